"""
Command line entry point.

    tile-quant nuclei IMAGE --out nuclei.csv
    tile-quant superpixels IMAGE --downsample 4 --out tiles.csv
    tile-quant features IMAGE --grid 512 --stain-choice H-DAB --lbp --out features.csv
"""

from __future__ import annotations
import argparse
import logging
from typing import List, Optional, Sequence

from ..addons import PathObject, PolygonROI, calibration_from_sizes, write_measurements_csv
from ..core import (
    ArrayImageServer,
    ColorTransformMethod,
    FeatureParams,
    H_DAB_DEFAULT,
    H_E_DEFAULT,
    NucleiParams,
    RegionStore,
    STAIN_CHOICES,
    SuperpixelParams,
)
from .worker import FAILED, TileTask, Worker, feature_analysis, nuclei_analysis, superpixel_analysis

logger = logging.getLogger(__name__)

STAINS = {"none": None, "H-DAB": H_DAB_DEFAULT, "H&E": H_E_DEFAULT}


def grid_parents(width: int, height: int, size: Optional[int]) -> List[PathObject]:
    """Rectangular parent annotations covering the image (one if size is None)."""
    if not size:
        return [PathObject(PolygonROI.rectangle(0, 0, width, height), kind="annotation", name="Image")]
    parents = []
    for y in range(0, height, size):
        for x in range(0, width, size):
            w = min(size, width - x)
            h = min(size, height - y)
            if w < 1 or h < 1:
                continue
            roi = PolygonROI.rectangle(x, y, w, h)
            parents.append(PathObject(roi, kind="annotation", name=f"Tile {x},{y}"))
    return parents


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="tile-quant", description="Tile texture features and segmentation")
    ap.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    sub = ap.add_subparsers(dest="command", required=True)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("image", help="input image (TIFF metadata is used for calibration)")
    common.add_argument("--out", required=True, help="output CSV path")
    common.add_argument("--pixel-size", type=float, default=None, help="pixel size in µm (overrides metadata)")
    common.add_argument("--pixel-width", type=float, default=None, help="pixel width in µm (overrides --pixel-size)")
    common.add_argument("--pixel-height", type=float, default=None, help="pixel height in µm (overrides --pixel-size)")
    common.add_argument("--magnification", dest="server_magnification", type=float, default=None,
                        help="objective magnification of the image")
    common.add_argument("--grid", type=int, default=None, help="split the image into square parents of N px")
    common.add_argument("--stains", choices=sorted(STAINS), default="H-DAB", help="stain vectors")
    common.add_argument("--threads", type=int, default=None)

    p = sub.add_parser("nuclei", parents=[common], help="watershed nucleus detection")
    p.add_argument("--threshold", type=float, default=None)
    p.add_argument("--min-area", type=float, default=None)
    p.add_argument("--no-split", action="store_true", help="do not split touching nuclei")

    p = sub.add_parser("superpixels", parents=[common], help="DoG superpixels")
    p.add_argument("--downsample", type=float, default=8.0)
    p.add_argument("--sigma", type=float, default=10.0, help="σ in µm (calibrated) or px")
    p.add_argument("--min-threshold", type=float, default=10.0)
    p.add_argument("--max-threshold", type=float, default=230.0)
    p.add_argument("--noise", type=float, default=1.0)
    p.add_argument("--channel", choices=[m.name for m in ColorTransformMethod], default="RGB_MEAN")

    p = sub.add_parser("features", parents=[common], help="tile texture features per parent")
    p.add_argument("--target-magnification", type=float, default=5.0)
    p.add_argument("--stain-choice", choices=list(STAIN_CHOICES), default="Optical density")
    p.add_argument("--tile-size", type=float, default=None, help="tile diameter in µm (calibrated) or px")
    p.add_argument("--circular", action="store_true")
    p.add_argument("--no-stats", action="store_true")
    p.add_argument("--no-coherence", action="store_true")
    p.add_argument("--lbp", action="store_true")
    p.add_argument("--lbp-radius", type=int, default=2)
    return ap


def nuclei_params(args, calibrated: bool) -> NucleiParams:
    overrides = {"split_shape": not args.no_split}
    if args.threshold is not None:
        overrides["threshold"] = args.threshold
    if args.min_area is not None:
        overrides["min_area"] = args.min_area
    if calibrated:
        return NucleiParams(**overrides)
    return NucleiParams.for_pixels(**overrides)


def feature_params(args) -> FeatureParams:
    values = dict(
        magnification=args.target_magnification,
        stain_choice=args.stain_choice,
        include_stats=not args.no_stats,
        do_circular=args.circular,
        coherence=not args.no_coherence,
        lbp=args.lbp,
        lbp_radius=args.lbp_radius,
    )
    if args.tile_size is not None:
        values.update(tile_size_microns=args.tile_size, tile_size_px=args.tile_size)
    return FeatureParams(**values)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        cal = calibration_from_sizes(args.pixel_size, args.pixel_width, args.pixel_height)
    except ValueError as e:
        parser.error(str(e))
    server = ArrayImageServer.from_file(args.image, calibration=cal, magnification=args.server_magnification)
    calibrated = server.calibration.has_pixel_size_microns
    logger.info("Loaded %s (%dx%d, calibrated=%s)", args.image, server.width, server.height, calibrated)

    stains = STAINS[args.stains]
    if args.command == "nuclei":
        analysis = nuclei_analysis(nuclei_params(args, calibrated), stains)
    elif args.command == "superpixels":
        params = SuperpixelParams(
            downsample_factor=args.downsample, sigma_pixels=args.sigma, sigma_microns=args.sigma,
            min_threshold=args.min_threshold, max_threshold=args.max_threshold,
            noise_threshold=args.noise, channel=args.channel,
        )
        analysis = superpixel_analysis(params)
    else:
        analysis = feature_analysis(feature_params(args), stains)

    store = RegionStore()
    parents = grid_parents(server.width, server.height, args.grid)
    tasks = [TileTask(parent, server, analysis, store=store) for parent in parents]
    outcomes = Worker(args.threads).run(tasks)

    if args.command == "features":
        objects = [o.parent for o in outcomes]
    else:
        objects = [obj for o in outcomes for obj in o.objects]
    write_measurements_csv(args.out, objects)
    logger.info("Wrote %d objects to %s", len(objects), args.out)
    return 1 if any(o.status == FAILED for o in outcomes) else 0


if __name__ == "__main__":
    raise SystemExit(main())
