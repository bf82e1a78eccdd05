"""
Every exception that is externally visible to users is a subclass of
SocketPipeException. Errors on an established session never surface as
exceptions; they are reported as a CloseReason by the transfer engine.
"""


class SocketPipeException(Exception):
    """
    Base class for all exceptions thrown by socketpipe.
    """

    def __init__(self, message=None):
        super().__init__(message)


class OptionsError(SocketPipeException):
    pass


class BindError(SocketPipeException):
    """
    A listening endpoint could not be bound. This is fatal at startup.
    """

    def __init__(self, message=None, mapping=None):
        super().__init__(message)
        self.mapping = mapping
