import argparse
import asyncio
import dataclasses
import json
import logging
import pathlib
import sys

from dotenv import find_dotenv, load_dotenv

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from recipe_video.app.config import PipelineSettings
from recipe_video.app.domain.errors import PipelineError
from recipe_video.app.domain.models import RemoteURL, UploadHandle
from recipe_video.app.services.pipeline import create_default_orchestrator


def _source_for(value: str):
    if value.startswith(("http://", "https://")):
        return RemoteURL(value)
    return UploadHandle(path=pathlib.Path(value), filename=pathlib.Path(value).name)


async def run_ingest(value: str, settings: PipelineSettings) -> int:
    orchestrator = create_default_orchestrator(settings)
    try:
        recipe = await orchestrator.ingest(_source_for(value))
    except PipelineError as error:
        print(f"FAILED stage={error.stage.value}: {error.message}", file=sys.stderr)
        return 1
    finally:
        await orchestrator.aclose()

    print(json.dumps(dataclasses.asdict(recipe), indent=2, ensure_ascii=False, default=str))
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Ingest one cooking video and print the recipe")
    parser.add_argument("source", help="Path to a local video or a remote video URL")
    parser.add_argument("--language", default=None, help="Spoken language hint for transcription")
    parser.add_argument("--media-root", default=None, help="Where the video and thumbnail are kept")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )
    load_dotenv(find_dotenv())

    overrides = {}
    if args.language:
        overrides["TRANSCRIPTION_LANGUAGE"] = args.language
    if args.media_root:
        overrides["MEDIA_ROOT"] = pathlib.Path(args.media_root)
    settings = PipelineSettings(**overrides)

    errors = settings.validate_models()
    if errors:
        parser.error("; ".join(errors))

    sys.exit(asyncio.run(run_ingest(args.source, settings)))


if __name__ == "__main__":
    main()
