class AdbxException(Exception):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return f"{self.__class__.__name__}: {self.message}"


class BridgeError(AdbxException):
    pass


class BridgeNotFoundError(BridgeError):
    pass


class BridgeTimeoutError(BridgeError):
    def __init__(self, message: str, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class ListingError(AdbxException):
    pass


class UnsupportedStrategyError(ListingError):
    pass


class ValidationError(AdbxException):
    pass


class UnsafePathError(ValidationError):
    pass


class TransferError(AdbxException):
    pass


class CLIError(AdbxException):
    pass
