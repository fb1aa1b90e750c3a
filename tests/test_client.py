import os
import pytest
import redis

from redis_mcp.ingestion import client as client_mod
from redis_mcp.ingestion.client import RedisInfoClient, FileInfoClient, create_client, INFO_SECTIONS
from redis_mcp.ingestion.info_parser import CRLF, LF
from redis_mcp.settings import ScraperSettings

SAMPLE_INFO = os.path.abspath(os.path.join(os.path.dirname(__file__), 'data', 'info.txt'))


class FakeRedis:
    instances = []

    def __init__(self, **kwargs):
        self.kwargs = kwargs
        self.callbacks = {}
        self.commands = []
        self.closed = False
        FakeRedis.instances.append(self)

    def set_response_callback(self, command, callback):
        self.callbacks[command] = callback

    def execute_command(self, *args):
        self.commands.append(args)
        section = args[1] if len(args) > 1 else 'default'
        if section == 'latencystats':
            return b'# Latencystats\r\nlatency_percentiles_usec_get:p50=1.000\r\n'
        return f'# {section}\r\nuptime_in_seconds:1\r\n'

    def close(self):
        self.closed = True


@pytest.fixture
def fake_redis(monkeypatch):
    FakeRedis.instances = []
    monkeypatch.setattr(redis, 'Redis', FakeRedis)
    return FakeRedis


def test_tcp_client_kwargs(fake_redis):
    c = RedisInfoClient('cache.internal:6380', password='pw', timeout_s=2.5)
    kw = fake_redis.instances[0].kwargs
    assert kw['host'] == 'cache.internal'
    assert kw['port'] == 6380
    assert kw['password'] == 'pw'
    assert kw['socket_timeout'] == 2.5
    assert 'ssl' not in kw
    assert c.delimiter == CRLF
    assert c.endpoint == 'cache.internal:6380'


def test_tls_client_kwargs(fake_redis, tmp_path):
    ca = tmp_path / 'ca.pem'
    ca.write_text('-----BEGIN CERTIFICATE-----\n')
    RedisInfoClient('localhost:6379', tls=True, tls_ca_file=str(ca))
    kw = fake_redis.instances[0].kwargs
    assert kw['ssl'] is True
    assert kw['ssl_ca_certs'] == str(ca)


def test_unix_socket_client(fake_redis):
    RedisInfoClient('/var/run/redis.sock', transport='unix')
    kw = fake_redis.instances[0].kwargs
    assert kw['unix_socket_path'] == '/var/run/redis.sock'
    assert 'host' not in kw


def test_missing_ca_file(fake_redis, tmp_path):
    with pytest.raises(ValueError, match='failed to load TLS config'):
        RedisInfoClient('localhost:6379', tls=True, tls_ca_file=str(tmp_path / 'nope.pem'))
    assert fake_redis.instances == []


def test_unsupported_transport(fake_redis):
    with pytest.raises(ValueError, match='unsupported transport'):
        RedisInfoClient('localhost:6379', transport='udp')


def test_retrieve_info_concatenates_sections(fake_redis):
    c = RedisInfoClient('localhost:6379')
    text = c.retrieve_info()
    fake = fake_redis.instances[0]
    assert fake.commands == [('INFO',), ('INFO', 'commandstats'), ('INFO', 'latencystats')]
    assert len(INFO_SECTIONS) == 3
    assert 'latency_percentiles_usec_get:p50=1.000' in text
    assert text.count(CRLF + '# ') == 2
    # raw callback keeps the reply text untouched
    assert fake.callbacks['INFO']('a:1\r\n') == 'a:1\r\n'
    c.close()
    assert fake.closed


def test_file_client():
    c = FileInfoClient(SAMPLE_INFO)
    assert c.delimiter == LF
    assert c.endpoint is None
    assert 'uptime_in_seconds:104946' in c.retrieve_info()


def test_create_client_prefers_file(fake_redis):
    c = create_client(ScraperSettings(info_file=SAMPLE_INFO))
    assert isinstance(c, FileInfoClient)
    assert fake_redis.instances == []
    c = create_client(ScraperSettings(endpoint='redis:6379'))
    assert isinstance(c, client_mod.RedisInfoClient)
    assert fake_redis.instances[0].kwargs['host'] == 'redis'


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv('REDIS_ENDPOINT', 'redis.example:6390')
    monkeypatch.setenv('REDIS_TLS', 'true')
    monkeypatch.setenv('REDIS_TRANSPORT', ' TCP ')
    monkeypatch.setenv('REDIS_COLLECTION_INTERVAL_SECONDS', '2.5')
    monkeypatch.setenv('REDIS_TIMEOUT_SECONDS', 'soon')
    monkeypatch.delenv('REDIS_PASSWORD', raising=False)
    monkeypatch.delenv('TIMESCALE_DSN', raising=False)
    s = ScraperSettings.from_env()
    assert s.endpoint == 'redis.example:6390'
    assert s.tls is True
    assert s.transport == 'tcp'
    assert s.collection_interval_s == 2.5
    assert s.timeout_s == 5.0
    assert s.password is None
    assert s.timescale_dsn is None


def test_settings_overrides_win(monkeypatch):
    monkeypatch.setenv('REDIS_ENDPOINT', 'from-env:6379')
    s = ScraperSettings.from_env(endpoint='explicit:6379', password=None)
    assert s.endpoint == 'explicit:6379'
