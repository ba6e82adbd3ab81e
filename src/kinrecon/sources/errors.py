class ManifestUnreadable(OSError):
    pass


class DeviceError(RuntimeError):
    """Depth camera could not be brought up."""


class DeviceInitFailed(DeviceError):
    pass


class DeviceOpenFailed(DeviceError):
    pass


class StreamCreateFailed(DeviceError):
    pass


class StreamStartFailed(DeviceError):
    pass


class AcquisitionError(RuntimeError):
    """No frame could be produced; fatal to the reconstruction loop."""


class FrameDecodeFailed(AcquisitionError):
    pass


class StreamWaitFailed(AcquisitionError):
    pass


class FrameInvalid(AcquisitionError):
    pass
