"""Local development entry point.

Usage:
    python run.py

Background tasks run inline in development unless TASK_QUEUE_EAGER=false.
"""

import os

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from enroll import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=int(os.environ.get("PORT", "5001")))
