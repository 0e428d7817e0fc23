import json
import pathlib
import sys

sys.path.append(str(pathlib.Path(__file__).resolve().parents[1]))

from dotenv import load_dotenv

from botbridge.config import load_settings


def get_config():
    settings = load_settings()
    data = settings.redacted()
    data["log_dir"] = str(pathlib.Path(settings.log_dir).resolve())
    return data


def main():
    load_dotenv()
    sys.stdout.write(json.dumps(get_config(), indent=2) + "\n")


if __name__ == "__main__":
    main()
