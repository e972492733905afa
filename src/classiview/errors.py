"""Exception hierarchy shared by the ML layer and the API."""

from __future__ import annotations


class ClassiViewError(Exception):
    """Base class for all ClassiView errors."""

    kind: str = "error"


class LoadError(ClassiViewError):
    """The model or its label metadata is unreachable or malformed."""

    kind = "load_error"


class ModelNotLoadedError(ClassiViewError):
    """A classification was requested before the model finished loading."""

    kind = "model_not_loaded"


class DeviceError(ClassiViewError):
    """The webcam is disabled, unavailable, or failed to deliver a frame."""

    kind = "device_error"


class InferenceError(ClassiViewError):
    """The classifier failed on a given image."""

    kind = "inference_error"


class ImageDecodeError(InferenceError):
    """The supplied image is empty, corrupt, unsupported, or too large."""

    kind = "image_decode_error"


class PreconditionViolation(ClassiViewError):
    """A prediction set reached ranking in a shape the classifier must never produce."""

    kind = "precondition_violation"


class UploadTooLargeError(ImageDecodeError):
    """The uploaded payload exceeds the configured size limit."""

    kind = "upload_too_large"


class ServerBusyError(ClassiViewError):
    """No inference slot became free within the queueing timeout."""

    kind = "busy"
