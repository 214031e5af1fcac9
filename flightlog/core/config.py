"""
Configuration for the flight history service
"""
import os
from dotenv import load_dotenv
load_dotenv()


class Config:
    # LLM Settings
    OLLAMA_API_KEY = os.getenv("OLLAMA_API_KEY")
    OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "https://ollama.com")
    EXTRACTION_MODEL = os.getenv("EXTRACTION_MODEL", "gpt-oss:20b-cloud")
    CHAT_MODEL = os.getenv("CHAT_MODEL", "gpt-oss:20b-cloud")
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0"))

    # Storage
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./flights.sqlite")
    AIRPORTS_CSV_PATH = os.getenv("AIRPORTS_CSV_PATH", "data/airports.csv")

    # Email scanning
    EXTRACTION_CONCURRENCY = int(os.getenv("EXTRACTION_CONCURRENCY", "3"))
    EXTRACTION_MAX_RETRIES = int(os.getenv("EXTRACTION_MAX_RETRIES", "3"))
    EXTRACTION_RETRY_DELAY = float(os.getenv("EXTRACTION_RETRY_DELAY", "1.0"))
    MAX_EMAIL_CHARS = int(os.getenv("MAX_EMAIL_CHARS", "50000"))

    # Chat
    CHAT_MAX_ITERATIONS = int(os.getenv("CHAT_MAX_ITERATIONS", "5"))

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


config = Config()
