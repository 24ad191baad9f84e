class ServiceError(Exception):
    """Base class for errors that map onto an HTTP response."""
    status_code = 500


class MissingParameter(ServiceError):
    status_code = 400


class InvalidParameter(ServiceError):
    status_code = 400


class ArtifactNotFound(ServiceError):
    status_code = 404


class CapacityExceeded(ServiceError):
    status_code = 503


class StorageNotConfigured(ServiceError):
    status_code = 500


class UploadError(ServiceError):
    status_code = 500


class SignedUrlError(ServiceError):
    status_code = 500


class ConversionProcessError(ServiceError):
    """ffmpeg exited non-zero or could not be started. Only ever recorded on a job."""

    def __init__(self, message: str, returncode=None):
        super().__init__(message)
        self.returncode = returncode


class JobNotFound(ServiceError):
    status_code = 404
