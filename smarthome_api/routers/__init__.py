from . import mfe, modules

__all__ = ["mfe", "modules"]
