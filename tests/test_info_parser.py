"""Top level INFO text parsing against the captured tests/data/info.txt.

The capture holds 125 fields across the default and commandstats sections plus
five latencystats lines, LF delimited as a file source would deliver it.
"""

import os
from redis_mcp.ingestion.info_parser import parse_info, CRLF, LF

SAMPLE_INFO = os.path.abspath(os.path.join(os.path.dirname(__file__), 'data', 'info.txt'))

with open(SAMPLE_INFO, 'r', encoding='utf-8') as fh:
    SAMPLE_TEXT = fh.read()

info = parse_info(SAMPLE_TEXT, LF)


def test_sample_field_count():
    # 125 default + commandstats fields, 5 latencystats fields
    assert len(info) == 125 + 5


def test_sample_spot_checks():
    assert info['allocator_frag_ratio'] == '1.24'
    assert info['cmdstat_get'] == 'calls=2,usec=4,usec_per_call=2.00,rejected_calls=0,failed_calls=0'
    assert info['latency_percentiles_usec_info'] == 'p50=10.123,p99=110.234,p99.9=120.234'
    assert info['db0'] == 'keys=1,expires=2,avg_ttl=3'


def test_headers_and_blank_lines_skipped():
    assert not any(k.startswith('#') for k in info)
    assert '' not in info


def test_empty_value_kept():
    assert info['config_file'] == ''


def test_value_keeps_further_colons():
    parsed = parse_info("# Server\nexecutable:/data/redis:server\nurl:tcp://10.0.0.1:6379\n", LF)
    assert parsed['executable'] == '/data/redis:server'
    assert parsed['url'] == 'tcp://10.0.0.1:6379'


def test_malformed_lines_skipped_silently():
    parsed = parse_info("no colon here\n:missing name\nok:1\n\n", LF)
    assert parsed == {'ok': '1'}


def test_crlf_delimiter():
    text = SAMPLE_TEXT.replace('\n', '\r\n')
    assert parse_info(text, CRLF) == info


def test_delimiter_is_not_auto_detected():
    # CRLF text split on LF leaves the trailing '\r' on every value
    parsed = parse_info("# Server\r\nuptime_in_seconds:10\r\n", LF)
    assert parsed['uptime_in_seconds'] == '10\r'


def test_empty_text():
    assert parse_info('', CRLF) == {}


def test_duplicate_field_last_write_wins():
    # The same name in two concatenated sub-reports: the later section wins.
    # TODO confirm with upstream redis whether duplicate names across sections can occur
    text = "# Server\nrole:master\nshared:1\n# Commandstats\nshared:2\n"
    parsed = parse_info(text, LF)
    assert parsed['shared'] == '2'
    assert parsed['role'] == 'master'
