import threading
import time
import os
import logging
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from photocanto import create_app
from photocanto.config import config
from photocanto.services.data_service import data_service

app = create_app()

logger = logging.getLogger('photocanto.scheduler')

PURGE_INTERVAL_S = 3600


def background_scheduler():
    while True:
        try:
            data_service.purge_expired_shares()
        except Exception as e:
            logger.error(f"Scheduler error: {e}")
        time.sleep(PURGE_INTERVAL_S)


if __name__ == '__main__':
    # Start scheduler
    if not os.environ.get("WERKZEUG_RUN_MAIN") == "true":  # Prevent double run with reloader
        threading.Thread(target=background_scheduler, daemon=True).start()

    port = int(os.environ.get("PORT", config.PORT))
    app.run(host='0.0.0.0', port=port, debug=False, use_reloader=False)
