"""Template scanner library. Finds ``CDN(...)`` asset references in views."""

from asset_cdn.lib.scanner.scanner import iter_calls, parse_call, scan_templates

__all__ = ["iter_calls", "parse_call", "scan_templates"]
