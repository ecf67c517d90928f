import warnings

# ctranslate2 (under faster-whisper) warns about pkg_resources on import; informational only
warnings.filterwarnings("ignore", message=".*pkg_resources is deprecated.*")

from roomscribe.main import create_app

app = create_app()
