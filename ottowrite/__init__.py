"""Top-level package for the OttoWrite manuscript access FastAPI service."""

from dotenv import load_dotenv

# Settings are read by ottowrite.settings.load_settings(); only populate env here.
load_dotenv()
