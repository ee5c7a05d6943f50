"""Platform adapter defaults."""

# Serial NMEA receiver
DEFAULT_SERIAL_PORT = "/dev/serial0"
DEFAULT_BAUD_RATE = 9600

# Fixes with a higher HDOP do not satisfy a high-accuracy watch
DEFAULT_HDOP_THRESHOLD = 2.0

# Seconds between device-node permission probes
DEFAULT_PERMISSION_POLL_INTERVAL = 2.0

# Simulated platform
DEFAULT_SIM_LATITUDE = 40.7608
DEFAULT_SIM_LONGITUDE = -111.8910
DEFAULT_SIM_INTERVAL = 1.0
DEFAULT_SIM_ACCURACY_M = 8.0
DEFAULT_SIM_STEP_M = 5.0

METERS_PER_DEGREE_LAT = 111_320.0
