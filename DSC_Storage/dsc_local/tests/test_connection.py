import redis

from DSC_Storage.dsc_local.connection import health_check


def test_health_check_ok(local_client):
    assert health_check(local_client) is True


def test_health_check_unreachable():
    client = redis.Redis(host="127.0.0.1", port=1, socket_connect_timeout=0.2)
    assert health_check(client) is False
    client.close()
