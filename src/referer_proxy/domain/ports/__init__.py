from .address import LocalAddressPort

__all__ = ["LocalAddressPort"]
