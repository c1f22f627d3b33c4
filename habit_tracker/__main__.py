from . import app, socketio

if __name__ == "__main__":
    socketio.run(app, host="0.0.0.0", port=app.config["PORT"], allow_unsafe_werkzeug=True)
