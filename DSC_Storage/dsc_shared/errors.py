class StorageMarketError(Exception):
    pass

class NotAuthenticatedError(StorageMarketError):
    def __init__(self , operation):
        self.operation = operation
        message = f"User not authenticated: {operation}"
        super().__init__(message)

class ValidationError(StorageMarketError):
    def __init__(self , message):
        super().__init__(message)

class DealNotFoundError(StorageMarketError):
    def __init__(self , deal_id):
        self.deal_id = deal_id
        message = f"Deal {deal_id} not found"
        super().__init__(message)

class DealNotRetrievableError(StorageMarketError):
    def __init__(self , deal_id , status):
        self.deal_id = deal_id
        self.status = status
        message = f"Deal {deal_id} cannot be retrieved: {status}"
        super().__init__(message)

class ShareLinkNotFoundError(StorageMarketError):
    def __init__(self , link_id):
        self.link_id = link_id
        message = f"Share link {link_id} not found"
        super().__init__(message)

class ShareLinkUnavailableError(StorageMarketError):
    def __init__(self , link_id , reason):
        self.link_id = link_id
        self.reason = reason
        message = f"Share link {link_id} unavailable: {reason}"
        super().__init__(message)

class LocalStoreUnavailableError(StorageMarketError):
    def __init__(self , message):
        message = f"Local_store_error  = {message}"
        super().__init__(message)

class ConcurrencyError(StorageMarketError):
    def __init__(self, operation):
        message = f"Optimistic lock failed after max retries: {operation}"
        super().__init__(message)

class SettlementError(StorageMarketError):
    def __init__(self , message):
        super().__init__(message)


class ServerDatabaseError(Exception):
    pass

class RemoteWriteError(ServerDatabaseError):
    def __init__(self , message):
        super().__init__(message)

class RemoteReadError(ServerDatabaseError):
    def __init__(self , message):
        super().__init__(message)

class FetchError(RemoteReadError):
    def __init__(self , message):
        super().__init__(message)

class ConnectionPoolError(ServerDatabaseError):
    def __init__(self , message):
        super().__init__(message)

class WalletNotFoundError(ServerDatabaseError):
    def __init__(self , user_id):
        self.user_id = user_id
        message = f"No wallet for user {user_id}"
        super().__init__(message)
