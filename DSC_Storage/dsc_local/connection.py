import redis
from DSC_Storage.dsc_shared import errors, config


def _create_client(db: int) -> redis.Redis:
    r = redis.Redis(
        host=config.REDIS_HOST,
        port=config.REDIS_PORT,
        db=db,
        decode_responses=False,
        socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT,
        socket_timeout=config.REDIS_SOCKET_TIMEOUT,
    )
    try:
        r.ping()
    except redis.exceptions.ConnectionError:
        raise errors.LocalStoreUnavailableError(f"Cannot connect to Redis at {config.REDIS_HOST}:{config.REDIS_PORT}")
    return r


def create_local_client() -> redis.Redis:
    return _create_client(config.REDIS_LOCAL_DB)


def create_settlement_client() -> redis.Redis:
    return _create_client(config.REDIS_SETTLEMENT_DB)


def health_check(local_client) -> bool:
    try:
        return bool(local_client.ping())
    except redis.exceptions.ConnectionError:
        return False
