import os

from app.lms import create_app
from app.lms.realtime import socketio

app = create_app()


if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=int(os.environ.get("PORT") or 5000))
