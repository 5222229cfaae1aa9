"""Runtime configuration, read from the environment (and .env if present).

Copy .env.example to .env and fill in your Spotify app credentials.
Create an app at https://developer.spotify.com/dashboard and set its
Redirect URI to the value of SPOTIFY_REDIRECT_URI.
"""

import os

from dotenv import load_dotenv

load_dotenv()

DIR = os.path.dirname(os.path.abspath(__file__))

CLIENT_ID = os.getenv("SPOTIFY_CLIENT_ID", "")
CLIENT_SECRET = os.getenv("SPOTIFY_CLIENT_SECRET", "")
REDIRECT_URI = os.getenv("SPOTIFY_REDIRECT_URI", "http://127.0.0.1:8888/api/callback")

# Signs the session cookie that carries per-account tokens.
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-this-in-production")
COOKIE_SECURE = os.getenv("COOKIE_SECURE", "false").lower() in ("1", "true", "yes")

LOG_DIR = os.getenv("LOG_DIR", os.path.join(DIR, "logs"))
PORT = int(os.getenv("PORT", "8888"))
CONSOLE_LOG_LEVEL = os.getenv("CONSOLE_LOG_LEVEL", "INFO").upper()
