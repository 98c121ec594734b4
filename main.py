"""
MedBot — Entry Point.

Single entry point: `python main.py` starts the LINE webhook server.
Logging is configured from LOG_LEVEL inside main().
"""

from medbot.bot.webhook import main

if __name__ == "__main__":
    main()
