import argparse
from pathlib import Path

from PIL import Image, ImageOps

from focalcrop.pipeline import apply_edits, load_config, request_from_params


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("input", type=Path)
    parser.add_argument("output", type=Path)
    parser.add_argument("--width", type=int)
    parser.add_argument("--height", type=int)
    parser.add_argument("--fit", choices=["cover", "contain", "fill", "inside", "outside"])
    parser.add_argument("--aspect-ratio", help="W:H, e.g. 16:9")
    parser.add_argument("--focal-x", type=float)
    parser.add_argument("--focal-y", type=float)
    parser.add_argument("--print-geometry", action="store_true")
    args = parser.parse_args()

    config = load_config()
    request = request_from_params(
        width=args.width,
        height=args.height,
        fit=args.fit,
        aspect_ratio=args.aspect_ratio,
        focal_x=args.focal_x,
        focal_y=args.focal_y,
    )

    image = ImageOps.exif_transpose(Image.open(args.input))
    result, geometry = apply_edits(image, request, config)
    if args.print_geometry:
        print(f"source={image.width}x{image.height} output={geometry.width}x{geometry.height}")
        print(f"crop={geometry.crop} fit={geometry.fit.value if geometry.fit else None}")
    suffix = (args.output.suffix or ".png").lstrip(".").upper()
    result.save(args.output, format="JPEG" if suffix == "JPG" else suffix)


if __name__ == "__main__":
    main()
