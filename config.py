"""Configuration settings for the iterative prompt-to-image refiner."""

import os

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# API Keys (loaded from .env)
FAL_KEY = os.getenv("FAL_KEY")
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")

# LLM Provider: "openai" or "anthropic"
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "anthropic")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Fal.ai queue settings
FAL_QUEUE_URL = "https://queue.fal.run"
FAL_GENERATION_APP = "fal-ai/flux-lora"
FAL_REMBG_APP = "fal-ai/imageutils/rembg"
QUEUE_POLL_INTERVAL = float(os.getenv("QUEUE_POLL_INTERVAL", "0.5"))
GENERATION_TIMEOUT = float(os.getenv("GENERATION_TIMEOUT", "120"))

# Style LoRA and the word that triggers it
LORA_WEIGHTS_URL = (
    "https://storage.googleapis.com/fal-flux-lora/"
    "2e141fc0246b46b99b22ca362fd43feb_pytorch_lora_weights.safetensors"
)
LORA_SCALE = 1.0
LORA_TRIGGER_WORD = "bufo"
SAFETY_TOLERANCE = "2"

# Seeds are drawn from [0, SEED_RANGE) once per session
SEED_RANGE = 1_000_000

# Critique settings
IMAGE_FETCH_TIMEOUT = float(os.getenv("IMAGE_FETCH_TIMEOUT", "5"))
CRITIQUE_TIMEOUT = float(os.getenv("CRITIQUE_TIMEOUT", "50"))
LLM_MAX_TOKENS = 1024

# Loop settings
DEFAULT_OUTPUT_MODE = "image"
MAX_ROUNDS = 5  # Hard limit on improvement rounds from the CLI
