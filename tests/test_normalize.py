from __future__ import annotations

from hostsmerge.normalize import (
    DROP_EMPTY,
    DROP_IP_LITERAL,
    DROP_NO_DOMAIN,
    DomainStream,
    iter_domains,
    load_domain_file,
    new_stats,
    parse_line,
    process_file,
)


def test_hosts_line_with_comment_and_carriage_return():
    result = parse_line("  0.0.0.0 tracker.example.net   # comment\r")

    assert result.ok
    assert result.tokens == ("tracker.example.net",)


def test_loopback_prefix_and_uppercase():
    assert parse_line("127.0.0.1\tAds.Example.COM").tokens == ("ads.example.com",)


def test_double_slash_comment_is_stripped():
    assert parse_line("ads.example.com // added by hand").tokens == ("ads.example.com",)


def test_comment_only_and_blank_lines_are_empty():
    assert parse_line("# just a comment").dropped == DROP_EMPTY
    assert parse_line("   \n").dropped == DROP_EMPTY
    assert parse_line("// note").dropped == DROP_EMPTY


def test_bare_ipv4_is_dropped():
    assert parse_line("192.168.1.1").dropped == DROP_IP_LITERAL
    assert parse_line("0.0.0.0").dropped == DROP_IP_LITERAL


def test_line_without_domain():
    assert parse_line("127.0.0.1 localhost").dropped == DROP_NO_DOMAIN
    assert parse_line("::1 ip6-localhost").dropped == DROP_NO_DOMAIN


def test_multiple_tokens_are_extracted():
    result = parse_line("0.0.0.0 a.example.com b.example.org")

    assert result.tokens == ("a.example.com", "b.example.org")


def test_incidental_matches_in_text_are_extracted():
    assert parse_line("blocked: cdn.tracker.co, pixel.tracker.co").tokens == (
        "cdn.tracker.co",
        "pixel.tracker.co",
    )
    assert parse_line("10.0.0.1 host.local2").tokens == ("host.local",)


def test_url_double_slash_cuts_the_line():
    result = parse_line("see https://lists.example.io/hosts")

    assert result.dropped == DROP_NO_DOMAIN


def test_iter_domains_counts_stats():
    stats = new_stats()
    lines = ["0.0.0.0 a.example.com", "", "1.2.3.4", "localhost", "b.example.com c.example.com"]

    tokens = list(iter_domains(lines, stats))

    assert tokens == ["a.example.com", "b.example.com", "c.example.com"]
    assert stats == {
        "lines_in": 5,
        "tokens_out": 3,
        "dropped_empty": 1,
        "dropped_ip_literal": 1,
        "dropped_no_domain": 1,
    }


def test_domain_stream_is_restartable(tmp_path):
    path = tmp_path / "list.txt"
    path.write_text("0.0.0.0 a.example.com\nb.example.com\n", encoding="utf-8")
    stream = DomainStream(path)

    first = list(stream)
    second = list(stream)

    assert first == second == ["a.example.com", "b.example.com"]
    assert stream.stats["lines_in"] == 2


def test_domain_stream_reads_utf8_bom(tmp_path):
    path = tmp_path / "bom.txt"
    path.write_bytes(b"\xef\xbb\xbfads.example.com\n")

    assert list(DomainStream(path)) == ["ads.example.com"]


def test_domain_stream_from_text():
    stream = DomainStream.from_text("x.example.com\r\ny.example.com\r\n")

    assert list(stream) == ["x.example.com", "y.example.com"]
    assert stream.label == "<text>"


def test_load_domain_file_missing_is_none(tmp_path):
    assert load_domain_file(tmp_path / "absent.txt") is None
    assert load_domain_file(None) is None


def test_load_domain_file_empty_is_empty_set(tmp_path):
    path = tmp_path / "empty.txt"
    path.write_text("# nothing here\n", encoding="utf-8")

    assert load_domain_file(path) == frozenset()


def test_process_file_writes_tokens(tmp_path):
    src = tmp_path / "in.txt"
    src.write_text("0.0.0.0 a.example.com # x\n\n127.0.0.1 b.example.com\n", encoding="utf-8")
    dest = tmp_path / "out" / "tokens.txt"

    stats = process_file(src, dest)

    assert dest.read_text(encoding="utf-8") == "a.example.com\nb.example.com\n"
    assert stats["tokens_out"] == 2
    assert stats["dropped_empty"] == 1
    assert [p.name for p in dest.parent.iterdir()] == ["tokens.txt"]
