"""Run the Telegram dose button poller.

Allows running with: python -m src.messaging.telegram
"""

from src.messaging.telegram.polling import main

if __name__ == "__main__":
    main()
