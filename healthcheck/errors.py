class HealthCheckError(Exception):
    pass


class ProviderError(HealthCheckError):
    def __init__(self, entity_kind: str, message: str) -> None:
        super().__init__(f"{entity_kind}: {message}")
        self.entity_kind = entity_kind


class ProviderUnavailable(ProviderError):
    pass


class ProviderAuthError(ProviderError):
    pass


class ProviderTimeout(ProviderError):
    pass


class MalformedRecord(HealthCheckError):
    def __init__(self, entity_kind: str, reason: str) -> None:
        super().__init__(f"{entity_kind}: {reason}")
        self.entity_kind = entity_kind
        self.reason = reason


class ReportWriteError(HealthCheckError, OSError):
    pass


class OutputLocationError(HealthCheckError):
    pass
