"""Main entry point for promptpatch - bundle files into a prompt and apply the reply."""

import sys
import logging

from cli import run_cli

def main():
    """Main entry point."""
    try:
        run_cli()
    except KeyboardInterrupt:
        # Handle Ctrl+C gracefully
        sys.exit(130)
    except Exception:
        logging.exception("Error in promptpatch")
        sys.exit(1)

if __name__ == "__main__":
    main()
