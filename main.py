import argparse
import asyncio
import logging
import sys
from datetime import datetime

from folio_blog import ConfigurationError, BlogSession, load_settings, open_session
from folio_blog.adaptors import LocalIdentityProvider, sqlite_store_factory


def render_blog(session: BlogSession) -> str:
    controller = session.controller
    lines = ["My Blog Posts", ""]
    message = controller.listing_message()
    if message:
        lines.append(message)
    for post in controller.posts:
        when = datetime.fromtimestamp((post.timestamp or 0) / 1000).strftime("%Y-%m-%d")
        lines.append(f"[{post.id}] {post.title}")
        lines.append(f"  By {post.author} on {when}")
        lines.append(f"  {post.content}")
    if controller.feed_error is not None:
        lines.append("")
        lines.append(f"(stale) {controller.notice}")
    return "\n".join(lines)


async def run(args: argparse.Namespace) -> int:
    overrides = {}
    if args.db_path:
        overrides["db_path"] = args.db_path
    settings = load_settings(overrides)
    logging.basicConfig(level=settings.log_level)

    async with sqlite_store_factory(
        settings.db_path, polling_interval=settings.polling_interval
    ) as store:
        provider = LocalIdentityProvider(settings.session_key, token_ttl=settings.session_ttl)
        async with open_session(settings, store, provider) as session:
            controller = session.controller
            if not session.ready:
                print(f"Blog unavailable: {controller.fatal_error}", file=sys.stderr)
                return 1

            controller.show_blog()
            sequence = session.synchronizer.snapshot.sequence

            if args.title is not None or args.content is not None:
                controller.show_admin()
                controller.set_title(args.title or "")
                controller.set_content(args.content or "")
                if not await controller.submit():
                    print(controller.inline_error or controller.notice, file=sys.stderr)
                    return 1
                await session.wait_for_update(sequence)
                sequence = session.synchronizer.snapshot.sequence

            if args.delete:
                post = next((p for p in controller.posts if p.id == args.delete), None)
                if post is None:
                    print(f"No post with id {args.delete}", file=sys.stderr)
                    return 1
                controller.request_delete(post)
                if not await controller.confirm_delete():
                    print(controller.notice, file=sys.stderr)
                    return 1
                await session.wait_for_update(sequence)

            controller.show_public()
            print(render_blog(session))

            if args.print_token:
                if not settings.session_key:
                    print("Set FOLIO_SESSION_KEY to reuse this token later.", file=sys.stderr)
                print(provider.issue_token(session.context.identity))
    return 0


def main():
    parser = argparse.ArgumentParser(description="Read and write the portfolio blog.")
    parser.add_argument("--db-path", help="SQLite database file (default: FOLIO_DB_PATH or memory)")
    parser.add_argument("--title", help="Title of a post to create")
    parser.add_argument("--content", help="Content of a post to create")
    parser.add_argument("--delete", metavar="POST_ID", help="Delete the post with this id")
    parser.add_argument("--print-token", action="store_true", help="Print a session token for this identity")
    args = parser.parse_args()
    try:
        sys.exit(asyncio.run(run(args)))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
