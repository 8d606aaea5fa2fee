"""
Loom CLI.

The `loom` command-line interface resolves application manifests.

Usage:
    loom validate <manifest>...
    loom inspect <manifest>... [--json] [--show-secrets]
    loom graph <manifest>... [--dot]
    loom plan <manifest>...

Several manifests are merged as layers, lowest precedence first.
"""

__version__ = "1.0.0"
__cli_name__ = "loom"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
