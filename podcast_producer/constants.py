"""All magic numbers and configuration constants."""

# --- Speakers & script format ---
HOST = "HOST"
GUEST = "GUEST"
MOMENTS_MARKER = "---MOMENTS---"
WORDS_PER_MINUTE = 150                       # speaking rate for client-facing estimates
EMOTION_TAGS = (
    "cheerfully", "thoughtfully", "seriously", "excitedly", "skeptically",
    "laughing", "sighing", "whispering", "interrupting", "curiously",
    "dramatically", "calmly", "enthusiastically",
)

# Brand names TTS engines mispronounce → phonetic spelling
PRONUNCIATIONS = {
    "Synthszr": "Synthesizer",
    "synthszr": "synthesizer",
    "SYNTHSZR": "SYNTHESIZER",
}

# --- Synthesis ---
TTS_RETRY_COUNT = 3                 # retries after the first attempt
TTS_RETRY_BASE_DELAY = 1.0          # seconds, doubled on each retry
TTS_RETRYABLE_STATUS = frozenset({429, 500, 502, 503})
TTS_CONNECT_TIMEOUT = 10.0          # seconds
TTS_READ_TIMEOUT = 120.0            # seconds
TTS_RATE = "-10%"                   # edge-tts speech rate
DEFAULT_PROVIDER = "elevenlabs"

# --- Batch execution ---
TTS_BATCH_SIZE = 5                  # concurrent TTS calls per batch
BATCH_PAUSE_SECONDS = 0.2           # pause between batches (provider rate limits)
MAX_PROCESSING_SECONDS = 800        # wall-clock budget per processing invocation
STALE_CLAIM_GRACE_SECONDS = 120     # extra time before a processing job counts as abandoned

# --- Assembly ---
SAMPLE_RATE = 44100
INTERRUPTION_MAX_SECONDS = 1.0      # shorter responses count as interruptions
INTERRUPTION_OVERLAP_SECONDS = 0.3
REACTION_MAX_SECONDS = 2.0          # shorter responses count as reactions
REACTION_OVERLAP_SECONDS = 0.15
TAIL_SECONDS = 0.5                  # silence appended after the last segment
STEREO_PAN = {                      # 0.0 = full left, 1.0 = full right
    HOST: 0.35,
    GUEST: 0.65,
}
CROSSFADE_SECONDS = 4.0             # intro/outro crossfade
NORMALIZE_CEILING = 1.0             # peak above this triggers normalization
NORMALIZE_TARGET = 0.95             # peak after normalization
OUTPUT_FORMAT = "mp3"
OUTPUT_BITRATE = "128k"

# --- Orchestration ---
SUPPORTED_LOCALES = ("de", "en", "cs", "nds")
PERSONALITY_LOCALES = {"de": "de", "en": "en", "cs": "en", "nds": "en"}
DEFAULT_PERSONALITY_LOCALE = "en"
RECENT_JOBS_LIMIT = 20

# --- Personality ---
PERSONALITY_DRIFT_RATE = 0.1        # fraction of the gap to the phase target closed per episode
PERSONALITY_NOISE = 0.03            # uniform jitter amplitude per dimension
MAX_MOMENTS_PER_EPISODE = 3
MAX_REMEMBERED_MOMENTS = 7
MOMENT_MAX_CHARS = 80
MOMENT_TYPES = ("joke", "slip_up", "ai_reflection", "personal")

# --- Storage ---
OUTPUT_DIR = "output"
SEGMENT_PREFIX = "podcasts"

VERSION = "0.1.0"
