"""
Entry point to run the expiring-subscription reminder scheduler.
"""
import sys

from worker.send_expiring import main as expiring_main


if __name__ == "__main__":
    sys.exit(expiring_main())
