"""Centralized constants for docker_remote to eliminate duplicate strings."""

# Docker Labels
DOCKER_COMPOSE_PROJECT = "com.docker.compose.project"
DOCKER_COMPOSE_WORKING_DIR = "com.docker.compose.project.working_dir"

# Go template placeholder printed by `docker inspect --format` for missing map keys
GO_TEMPLATE_NO_VALUE = "<no value>"

# Compose file discovery, in priority order
COMPOSE_FILENAMES = (
    "docker-compose.yml",
    "docker-compose.yaml",
    "compose.yml",
    "compose.yaml",
)
ROOT_ENV_FILENAMES = (".env", ".env.local", ".env.production")

# Compose CLI variants
COMPOSE_V2_COMMAND = "docker compose"
COMPOSE_V1_COMMAND = "docker-compose"

# Output fragments that mean "nothing to do" for `up -d` on some compose versions
DEPLOY_IDEMPOTENCY_MARKERS = ("up-to-date", "Started", "Running")

# Project grouping
AUTO_PROJECT_PREFIX = "auto:"
STANDALONE_PROJECT_ID = "auto:standalone"
STANDALONE_PROJECT_NAME = "Standalone Containers"

# Heredoc delimiter prefix for remote file writes
HEREDOC_DELIMITER_PREFIX = "EOF_"

# Docker command templates
DOCKER_PS_JSON = "docker ps -a --format '{{json .}}'"
DOCKER_STATS_JSON = "docker stats --no-stream --format '{{json .}}'"
DOCKER_PS_PROJECT_FILTER = "docker ps -a --filter {0} --format '{{{{.ID}}}}'"
DOCKER_INSPECT_WORKING_DIR = (
    "docker inspect {0} --format "
    f"'{{{{{{{{index .Config.Labels \"{DOCKER_COMPOSE_WORKING_DIR}\"}}}}}}}}'"
)
DOCKER_INSPECT_RUNNING = "docker inspect {0} --format '{{{{.State.Running}}}}'"

# Fragment of docker's error for an id that does not exist (container or object)
DOCKER_NO_SUCH_MARKER = "No such"

# Host overview commands
CONNECTION_TEST_COMMAND = "echo ssh-ok"
HOST_CORES_COMMAND = "nproc"
HOST_LOAD_COMMAND = "cat /proc/loadavg"
HOST_MEMORY_COMMAND = "free -m"
HOST_DISK_COMMAND = "df -B1 --output=source,size,used,avail,pcent,target -x tmpfs -x devtmpfs"

# Environment Variables
ENV_VPS_HOST = "VPS_HOST"
ENV_VPS_PORT = "VPS_PORT"
ENV_VPS_USERNAME = "VPS_USERNAME"
ENV_VPS_PRIVATE_KEY = "VPS_PRIVATE_KEY"
ENV_VPS_PRIVATE_KEY_PATH = "VPS_PRIVATE_KEY_PATH"
ENV_VPS_PASSWORD = "VPS_PASSWORD"
ENV_VPS_PRIVATE_KEY_PASSPHRASE = "VPS_PRIVATE_KEY_PASSPHRASE"
ENV_SSH_CONNECT_TIMEOUT_MS = "SSH_CONNECT_TIMEOUT_MS"
ENV_REMOTE_CONFIG = "DOCKER_REMOTE_CONFIG"

# Logging
LOG_INIT_MESSAGE = "Logging system initialized"
LOG_COMMAND_PREVIEW_CHARS = 100
