# nl2sql_gateway/errors.py
"""Gateway error taxonomy. Each error knows the HTTP status it maps to."""


class GatewayError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ClientInputError(GatewayError):
    status_code = 400


class SqlSyntaxError(ClientInputError):
    pass


class ExecutionError(ClientInputError):
    pass


class PolicyViolation(GatewayError):
    status_code = 403

    def __init__(self, message: str, kind=None):
        super().__init__(message)
        self.kind = kind


class UpstreamServiceError(GatewayError):
    status_code = 500


class InferenceError(UpstreamServiceError):
    pass


class PersistenceError(UpstreamServiceError):
    pass
