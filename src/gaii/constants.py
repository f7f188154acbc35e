"""Shared constants for the GA II coolant monitor.

Device identity and report geometry match the Lian Li GA II LCD pump
controller.  Cadence timings are the fixed intervals the controller
firmware needs to keep emitting telemetry.
"""

# =========================================================================
# Device identity
# =========================================================================

COOLER_VID = 0x0416
COOLER_PID = 0x7395

# =========================================================================
# Report geometry
# =========================================================================

# Every read and write is exactly one 64-byte report.
REPORT_LENGTH = 64

# Coolant temperature lives in one unsigned byte of the input report.
TEMPERATURE_BYTE_INDEX = 11

# Bytes of each received report included in debug dumps
REPORT_DUMP_BYTES = 20

# =========================================================================
# Timing (seconds unless suffixed _MS)
# =========================================================================

READ_TIMEOUT_MS = 250

# Heartbeat period, staleness window and query spacing all share one interval
CADENCE_INTERVAL_S = 2.0

# Fixed wait between failed connect attempts (no growth)
RECONNECT_DELAY_S = 2.0

# Upper bound for CoolantSensor.close() waiting on the poll thread
JOIN_TIMEOUT_S = 1.0

# =========================================================================
# Opcodes (hex, zero-padded to REPORT_LENGTH)
# =========================================================================

CMD_PWM_SYNC_ENABLE = "018a00000002013a"
CMD_QUERY_TEMPERATURE = "0181"

# =========================================================================
# Host-facing names
# =========================================================================

PLUGIN_NAME = "Lian Li GA II LCD Plugin"
SENSOR_ID = "LianLiCoolantTemp"
SENSOR_NAME = "GA II Coolant Temp"

PUMP_SPEED_MIN = 1
PUMP_SPEED_MAX = 100

BACKENDS = ("hidapi", "pyusb")
