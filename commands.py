
# Quick reference commands (run from repo root). These are comments only; copy/paste as needed.

# Install the project with test dependencies, plus the browser driver
# python -m pip install -e ".[test]"
# python -m playwright install msedge

# Run the full test suite (tests/db/ needs DATABASE_URL, otherwise it is skipped)
# python -m pytest

# Run focused test files
# python -m pytest tests/test_recipients.py tests/test_messages.py
# python -m pytest tests/test_whatsapp_engine.py
# python -m pytest tests/test_notify_password_changes.py tests/test_send_expiring.py
# python -m pytest tests/test_api_notifications.py

# Start the API locally (POST /api/cuentasvencidas spawns the password notifier)
# python -m dotenv run -- python -m uvicorn app.api:app --reload

# Run the password-change notifier by hand
# NOTIFY_ITEMS_JSON='{"items":[{"correo":"cuenta@mail.com","nuevaClave":"Clave123"}]}' python -m worker.notify_password_changes

# Expiring-subscription reminders
# python -m worker.send_expiring            # wait for CRON_SCHEDULE
# python -m worker.send_expiring --now      # run now, keep scheduling
# python -m worker.send_expiring --once     # run once and exit
# DRY_RUN=true python -m worker.send_expiring --once
# python -m worker.send_expiring --log 573001112222   # latest wa_logs rows for a phone

# Create the tables locally (admin app owns them in production)
# python -c "from core.db import init_db; init_db()"

# Tail the notifier logs
# tail -f .logs/notify-password-changes.log
# tail -f ~/.medplay/logs/send-expiring-wa.log
