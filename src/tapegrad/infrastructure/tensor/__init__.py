from ._tensor_handle import TensorHandle

__all__ = [TensorHandle.__name__]
