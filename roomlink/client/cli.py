import argparse
import asyncio
import logging
import sys
from urllib.parse import urlsplit, urlunsplit

from roomlink.client.errors import MediaAcquisitionError
from roomlink.client.ice import fetch_ice_servers
from roomlink.client.media import LocalMedia
from roomlink.client.session import SignalingSession
from roomlink.config import settings

logger = logging.getLogger("roomlink.client")


def ice_url_for(signaling_url: str) -> str:
    """ws://host:port/ws -> http://host:port/ice.json"""
    parts = urlsplit(signaling_url)
    scheme = {"ws": "http", "wss": "https"}.get(parts.scheme, parts.scheme)
    return urlunsplit((scheme, parts.netloc, "/ice.json", "", ""))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="roomlink-client", description="Headless roomlink mesh client")
    parser.add_argument("--server", default=settings.SIGNALING_URL, help="Signaling websocket URL")
    parser.add_argument("--ice-url", default=settings.ICE_CONFIG_URL,
                        help="ICE config URL (default: /ice.json on the signaling host)")
    parser.add_argument("--room", required=True, help="Room to join")
    parser.add_argument("--play", help="Media file, device or URL to send (omit to only receive)")
    parser.add_argument("--format", help="ffmpeg input format, e.g. v4l2 or avfoundation")
    parser.add_argument("--mute-video", action="store_true", help="Start with video blanked")
    parser.add_argument("--mute-audio", action="store_true", help="Start with audio silenced")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser


async def run_client(args, local_media: LocalMedia, ice_servers):
    session = await SignalingSession.connect(args.server, local_media=local_media, ice_servers=ice_servers)
    reader = asyncio.create_task(session.run())
    try:
        await session.join(args.room)
        if args.mute_video:
            session.set_video_enabled(False)
        if args.mute_audio:
            session.set_audio_enabled(False)
        await reader
    finally:
        reader.cancel()
        await session.close()


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s',
    )

    # Missing ICE config only degrades connectivity
    ice_servers = fetch_ice_servers(args.ice_url or ice_url_for(args.server))
    local_media = LocalMedia(args.play, format=args.format)
    try:
        asyncio.run(run_client(args, local_media, ice_servers))
    except MediaAcquisitionError as e:
        print(f"Cannot join room {args.room}: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return 0
