class TranscriberError(Exception):
    default_message = "Transcription failed"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.default_message)


class PermissionDenied(TranscriberError):
    default_message = "Permission Denied"


class CaptureDenied(PermissionDenied):
    pass


class CaptureUnavailable(TranscriberError):
    default_message = "Failed to capture audio."


class StreamConnectionError(TranscriberError):
    default_message = "Connection failed"


def user_message(error: BaseException) -> str:
    return f"Error: {error}"


def as_transcriber_error(error: BaseException) -> TranscriberError:
    if isinstance(error, TranscriberError):
        return error
    return TranscriberError(str(error) or type(error).__name__)
