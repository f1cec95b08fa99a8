import os
from dataclasses import dataclass, field
from pathlib import Path
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass(frozen=True)
class Settings:
    port: int = 3000
    host: str = "0.0.0.0"
    public_dir: Path = field(default_factory=lambda: PROJECT_ROOT / "public")
    images_route: str = "/images"
    runtime_script: str = "./gpt-vis.min.js"
    public_base_url: str | None = None

    @property
    def images_dir(self) -> Path:
        return self.public_dir / "images"

    @classmethod
    def from_env(cls) -> "Settings":
        """Read settings from the environment (and a local .env, if any)."""
        load_dotenv()
        public_dir = os.getenv("PUBLIC_DIR")
        base_url = os.getenv("PUBLIC_BASE_URL")
        return cls(
            port=int(os.getenv("PORT", "3000")),
            host=os.getenv("HOST", "0.0.0.0"),
            public_dir=Path(public_dir) if public_dir else PROJECT_ROOT / "public",
            images_route="/" + os.getenv("IMAGES_ROUTE", "/images").strip("/"),
            runtime_script=os.getenv("GPT_VIS_RUNTIME", "./gpt-vis.min.js"),
            public_base_url=base_url.rstrip("/") if base_url else None,
        )
