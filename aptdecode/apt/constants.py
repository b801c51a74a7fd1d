"""APT line format constants.

Line layout, sync trains and telemetry geometry follow the NOAA KLM User's
Guide, section 4.2 (APT). Pixel columns are counted from the start of the
channel A sync train, which is also where a line starts.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------
PIXEL_RATE = 4160          # pixels per second (2 pixels per Hz of 2080 Hz video)
LINES_PER_SECOND = 2
LINE_PIXELS = PIXEL_RATE // LINES_PER_SECOND  # 2080
CARRIER_FREQ = 2400        # Hz - AM subcarrier
MIN_WORK_RATE = 3 * PIXEL_RATE  # 12480 Hz

# Envelope low-pass applied after demodulation
ENVELOPE_CUTOFF_HZ = PIXEL_RATE / 2  # highest video frequency
ENVELOPE_DELTA_HZ = 1000.0

# ---------------------------------------------------------------------------
# Per-channel field widths (pixels)
# ---------------------------------------------------------------------------
SYNC_WIDTH = 39
SPACE_WIDTH = 47
IMAGE_WIDTH = 909
TELEMETRY_WIDTH = 45
CHANNEL_WIDTH = SYNC_WIDTH + SPACE_WIDTH + IMAGE_WIDTH + TELEMETRY_WIDTH  # 1040

CHANNEL_A_START = 0
CHANNEL_B_START = CHANNEL_WIDTH

IMAGE_A_COLUMNS = slice(SYNC_WIDTH + SPACE_WIDTH, SYNC_WIDTH + SPACE_WIDTH + IMAGE_WIDTH)
IMAGE_B_COLUMNS = slice(CHANNEL_B_START + IMAGE_A_COLUMNS.start, CHANNEL_B_START + IMAGE_A_COLUMNS.stop)
TELEMETRY_A_COLUMNS = slice(CHANNEL_WIDTH - TELEMETRY_WIDTH, CHANNEL_WIDTH)
TELEMETRY_B_COLUMNS = slice(LINE_PIXELS - TELEMETRY_WIDTH, LINE_PIXELS)

# Columns at the edges of a telemetry field are smeared by the envelope
# filter; only the centre is averaged.
TELEMETRY_MARGIN = 8

# ---------------------------------------------------------------------------
# Sync trains (one character per pixel, 1 = high level)
# ---------------------------------------------------------------------------
# Channel A: 4 lead-in pixels, seven 1040 Hz cycles, 7 trailing pixels.
SYNC_A_PIXELS = "0000" + "0011" * 7 + "0000000"
# Channel B: 4 lead-in pixels, seven 832 pps pulses.
SYNC_B_PIXELS = "0000" + "11100" * 7

# ---------------------------------------------------------------------------
# Telemetry frame
# ---------------------------------------------------------------------------
WEDGE_LINES = 8
WEDGE_COUNT = 16
TELEMETRY_FRAME_LINES = WEDGE_LINES * WEDGE_COUNT  # 128
# Wedges 1..8 step from 1/8 to 8/8 of full scale, wedge 9 is zero.
REFERENCE_WEDGES = 9

# ---------------------------------------------------------------------------
# Sync detection defaults
# ---------------------------------------------------------------------------
DEFAULT_SYNC_THRESHOLD = 0.5
DEFAULT_DRIFT = 0.005         # fraction of a line period
DEFAULT_RESYNC_AFTER = 3      # consecutive misses before a wide search
