import subprocess
from pathlib import Path

from tqdm import tqdm

VERBOSE = True

def verbose_log(msg: str) -> None:
    """
    Print message only if VERBOSE is True.
    Goes through tqdm.write so an active progress bar stays intact.
    """
    if VERBOSE:
        tqdm.write(msg)

def log(msg: str) -> None:
    """
    Always print message.
    """
    tqdm.write(msg)

def run_ffmpeg_command(cmd: list) -> subprocess.CompletedProcess:
    """
    Runs an ffmpeg/ffprobe command list, raises RuntimeError if it fails.
    """
    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise RuntimeError(f"{cmd[0]} command failed:\n{result.stderr}")
    return result

def ensure_dir(path: Path) -> None:
    """
    Ensure that a directory exists; creates if not.
    """
    path.mkdir(parents=True, exist_ok=True)

def seconds_to_iso8601(seconds: float) -> str:
    """
    Convert seconds (float) to ISO 8601 duration format (PT#H#M#S).
    """
    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)
    secs = seconds % 60
    iso = "PT"
    if hours > 0:
        iso += f"{hours}H"
    if minutes > 0:
        iso += f"{minutes}M"
    iso += f"{secs:.3f}S"
    return iso

def format_timestamp(seconds: float) -> str:
    """
    Format seconds as MM:SS.mmm for log lines.
    """
    mins, secs = divmod(seconds, 60)
    return f"{int(mins):02d}:{secs:06.3f}"
