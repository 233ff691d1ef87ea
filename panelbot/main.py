"""
Alternate entrypoint that delegates to the panelcord script.

Allows `python -m panelbot.main` and the `panelcord` console script
to run the bot.
"""

import asyncio

from panelcord import main as run_panelcord


def main() -> None:
    try:
        asyncio.run(run_panelcord())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
