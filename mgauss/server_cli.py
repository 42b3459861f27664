from __future__ import annotations


def main() -> None:
    from mgauss.app import main as app_main

    app_main()
