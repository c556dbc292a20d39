# Configuration settings for menu_cleaner

# Frame rate assumed if not detected automatically
FRAME_RATE_DEFAULT = 29.97

# Target menu colors (RGB)
MENU_DARK_RGB = (14, 4, 49)      # deep purple background
MENU_LIGHT_RGB = (50, 4, 139)    # lighter purple selection bar

# HSV tolerances (+/-) per channel: (H, S, V) on the OpenCV 0-180 / 0-255 scale
DEFAULT_TOLERANCE = (10, 40, 40)
BACKGROUND_TOLERANCE = (20, 50, 50)  # wide, reference lighting varies
ACCENT_TOLERANCE = (15, 50, 50)

# Text is matched by low saturation and high value instead of a hue
TEXT_HSV_LOWER = (0, 0, 200)
TEXT_HSV_UPPER = (180, 30, 255)

# Calibration: largest background blob must cover more than this share of the image
MIN_MENU_AREA_FRACTION = 0.01

# Detection thresholds
IOU_THRESHOLD = 0.3
TRIAD_MIN_RATIO = 0.01

# Timeline thresholds (seconds)
CLUSTER_TOLERANCE = 0.5
MIN_KEEP_SEGMENT = 0.1

# Frames are downscaled to this width before scanning
PROCESS_WIDTH = 640

# Progress bar refresh interval (frames)
PROGRESS_EVERY = 30

# Frames handed to the worker pool at once when scanning in parallel
SCAN_BATCH_SIZE = 64

# Export encoding
VIDEO_CODEC = "libx264"
VIDEO_CRF = "18"
VIDEO_PRESET = "ultrafast"
AUDIO_CODEC = "aac"

# Output directory for all processed files
OUTPUT_DIR = "output"
