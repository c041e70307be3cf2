from ._errors import BackwardBeforeForwardError, KernelFaultError
from ._function import Function
from ._pooling import ISoftPool

__all__ = ["BackwardBeforeForwardError", "KernelFaultError", "Function", "ISoftPool"]
