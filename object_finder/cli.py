"""
Command-line entry point.

    object-finder list
    object-finder register --name Mug --description "Blue mug" --lat 52.1 --lon 4.3 a.jpg b.jpg
    object-finder identify photo.jpg
    object-finder nearest photo.jpg -k 5
    object-finder watch --camera 0 --duration 30
"""

import os
import sys
import asyncio
import logging
import argparse
from typing import List, Optional

from .catalog import CatalogHolder, Location, object_summaries
from .catalog_client import DEFAULT_BASE_URL, CatalogClient
from .continuous import ContinuousMatcher, LiveMatch
from .embedding import EmbeddingExtractor, OnnxEmbeddingModel
from .errors import CatalogEmpty, CatalogUnreachable, ObjectFinderError
from .frame_sources import CameraSource, load_image
from .index import CatalogIndex
from .single_shot import SingleShotMatcher

logger = logging.getLogger(__name__)

CATALOG_REFRESH = float(os.environ.get("CATALOG_REFRESH_INTERVAL", "30"))


def _load_extractor(model_path: Optional[str]) -> EmbeddingExtractor:
    if not model_path:
        raise ObjectFinderError("No model given: pass --model or set OBJECT_FINDER_MODEL")
    return asyncio.run(EmbeddingExtractor().load(OnnxEmbeddingModel, model_path))


def cmd_list(args) -> int:
    catalog = CatalogClient(args.backend).fetch_snapshot()
    for summary in object_summaries(catalog):
        print(f"{summary['id']}\t{summary['name']}\t{summary['photos']} photo(s)")
    return 0


def cmd_register(args) -> int:
    extractor = _load_extractor(args.model)
    features = [extractor.extract(load_image(path)) for path in args.images]

    location = None
    if args.lat is not None and args.lon is not None:
        location = Location(args.lat, args.lon)

    ok = CatalogClient(args.backend).register_object(
        args.name, args.description, location, features, args.images
    )
    print("Object created successfully!" if ok else "Failed to create object.")
    return 0 if ok else 1


def cmd_identify(args) -> int:
    extractor = _load_extractor(args.model)
    catalog = CatalogClient(args.backend).fetch_snapshot()

    matches = SingleShotMatcher(extractor).identify(load_image(args.image), catalog)
    if not matches:
        print("No confident matches found.")
        return 0

    print(f"Found {len(matches)} possible match(es):")
    for match in matches:
        print(f"  {match.name}\t{round(match.score * 100)}%\t{match.description}")
    return 0


def cmd_nearest(args) -> int:
    extractor = _load_extractor(args.model)
    catalog = CatalogClient(args.backend).fetch_snapshot()
    if not catalog.vector_count:
        raise CatalogEmpty("Catalog has no feature vectors")

    vector = extractor.extract(load_image(args.image))
    for obj, score in CatalogIndex.build(catalog).search(vector, k=args.k):
        print(f"  {obj.name}\t{score:.4f}")
    return 0


def _print_report(report) -> None:
    if isinstance(report, LiveMatch):
        c = report.candidate
        print(f"Detected: {c.name} ({round(c.score * 100)}%)")
    else:
        print(f"Scanning... ({round(report.highest_score * 100)}%)")


async def _refresh_catalog(holder: CatalogHolder, client, matcher: ContinuousMatcher,
                           every: float) -> None:
    while True:
        await asyncio.sleep(every)
        try:
            catalog = await asyncio.to_thread(holder.refresh, client)
        except CatalogUnreachable as e:
            logger.warning(f"Catalog refresh failed, keeping previous snapshot: {e}")
            continue
        if catalog:
            matcher.update_catalog(catalog)


async def _watch(extractor, holder: CatalogHolder, client, source,
                 duration: Optional[float], refresh: Optional[float]) -> ContinuousMatcher:
    matcher = ContinuousMatcher(extractor, on_report=_print_report)
    await matcher.start(source, holder.snapshot)
    refresher = None
    if refresh:
        refresher = asyncio.create_task(_refresh_catalog(holder, client, matcher, refresh))
    try:
        if duration:
            await asyncio.sleep(duration)
        else:
            await asyncio.Event().wait()
    finally:
        if refresher is not None:
            refresher.cancel()
            await asyncio.gather(refresher, return_exceptions=True)
        await matcher.stop()
    return matcher


def cmd_watch(args) -> int:
    extractor = _load_extractor(args.model)
    client = CatalogClient(args.backend)
    holder = CatalogHolder()
    holder.refresh(client)
    try:
        asyncio.run(_watch(extractor, holder, client, CameraSource(args.camera),
                           args.duration, args.refresh))
    except KeyboardInterrupt:
        pass
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="object-finder", description="Register and identify objects by photo.")
    parser.add_argument("--backend", default=DEFAULT_BASE_URL, help="Catalog backend base URL")
    parser.add_argument("--model", default=os.environ.get("OBJECT_FINDER_MODEL"),
                        help="Path to the ONNX embedding model")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("list", help="List registered objects")
    p.set_defaults(func=cmd_list)

    p = sub.add_parser("register", help="Register a new object from photos")
    p.add_argument("--name", required=True)
    p.add_argument("--description", default="")
    p.add_argument("--lat", type=float)
    p.add_argument("--lon", type=float)
    p.add_argument("images", nargs="+")
    p.set_defaults(func=cmd_register)

    p = sub.add_parser("identify", help="Identify the object in a photo")
    p.add_argument("image")
    p.set_defaults(func=cmd_identify)

    p = sub.add_parser("nearest", help="Show the closest catalog objects, unthresholded")
    p.add_argument("image")
    p.add_argument("-k", type=int, default=5)
    p.set_defaults(func=cmd_nearest)

    p = sub.add_parser("watch", help="Identify objects live from a camera")
    p.add_argument("--camera", type=int, default=0)
    p.add_argument("--duration", type=float, help="Stop after this many seconds")
    p.add_argument("--refresh", type=float, default=CATALOG_REFRESH,
                   help="Re-fetch the catalog every N seconds (0 disables)")
    p.set_defaults(func=cmd_watch)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    args = build_parser().parse_args(argv)
    try:
        return args.func(args)
    except ObjectFinderError as e:
        logger.error(str(e))
        return 1


if __name__ == "__main__":
    sys.exit(main())
