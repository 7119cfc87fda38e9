class WalletGraphError(Exception):
    pass


class DataSourceError(WalletGraphError):
    pass


class NetworkError(DataSourceError):
    pass


class RateLimitError(DataSourceError):
    pass


class ValidationError(WalletGraphError):
    pass


class StoreError(WalletGraphError):
    pass


class StoreUnavailable(StoreError):
    pass
