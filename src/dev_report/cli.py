"""CLI entry point for dev-report."""

import logging
import os


def main() -> None:
    """Launch the Dev Report TUI."""
    from dotenv import load_dotenv

    load_dotenv()  # Load .env file (e.g. DEV_REPORT_API_KEY)

    from textual.logging import TextualHandler

    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "WARNING").upper(),
        handlers=[TextualHandler()],
    )

    from dev_report.app import DevReportApp

    app = DevReportApp()
    app.run()


if __name__ == "__main__":
    main()
