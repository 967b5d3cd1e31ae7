#!/usr/bin/env python3
"""
devarchive - command line front end for the portfolio API.

  devarchive serve                              run the API with uvicorn
  devarchive gallery [--tab badges] [--query react] [--view list] [--watch]
  devarchive admin certificates --facet category=cloud
  devarchive admin certificates --show <id> --download ./
  devarchive fields internships
  devarchive overview
  devarchive login --email me@example.com --password ...
  devarchive add certificates --set title="AWS Dev" --set category=cloud --image cert.png
  devarchive update certificates <id> --set issuer=Amazon
  devarchive remove certificates <id>
  devarchive create-admin --name Me --email me@example.com --password ...

Writes read the bearer token from --token or PORTFOLIO_TOKEN.
"""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys

from client import PortfolioClient
from entities import ENTITIES, get_spec
from render import render, render_detail, render_notices, render_summary
from views import AdminView, GalleryView, load_overview


def parse_pairs(pairs):
    """Turn ["k=v", ...] into a dict; values that look like JSON lists are decoded."""
    fields = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise argparse.ArgumentTypeError(f"Expected key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        if value.startswith("["):
            try:
                value = json.loads(value)
            except ValueError:
                pass
        fields[key.strip()] = value
    return fields


def make_client(args):
    return PortfolioClient(base_url=args.api, token=getattr(args, "token", None))


def print_notices(client):
    notices = client.drain_notices()
    if notices:
        print(render_notices(notices), file=sys.stderr)
    return 1 if notices else 0


async def cmd_gallery(args):
    async with make_client(args) as client:
        def show(view):
            print(render(view.visible, view.view_mode, notices=client.drain_notices()))
            counts = ", ".join(f"{k}: {v}" for k, v in view.counts.items())
            print(f"\n{len(view.visible)} shown ({counts})")

        gallery = GalleryView(client, interval=args.interval)
        gallery.set_tab(args.tab)
        gallery.set_query(args.query)
        gallery.set_view_mode(args.view)
        if not args.watch:
            await gallery.refresh()
            show(gallery)
            await gallery.close()
            return 0

        gallery.on_refresh = show
        async with gallery:
            await asyncio.Event().wait()
    return 0


async def cmd_admin(args):
    async with make_client(args) as client:
        view = AdminView(client, args.entity)
        await view.refresh()
        view.set_query(args.query)
        for name, value in parse_pairs(args.facet).items():
            view.set_facet(name, value)
        view.set_view_mode(args.view)

        if args.download and not args.show:
            raise ValueError("--download needs --show ID")
        if args.show:
            item = view.find(args.show)
            print(render_detail(item, view.spec.data_type) if item else f"No {view.spec.label} with id {args.show}")
            if item and args.download:
                saved = await client.download_image(item, args.download, view.spec)
                if saved:
                    print(f"Saved image to {saved}")
        else:
            print(render(view.visible, view.view_mode, view.spec.data_type))
        print()
        print(render_summary(view.summary, view.spec.label, view.spec.highlights))
        for facet, options in view.facet_options.items():
            print(f"{facet} options: {', '.join(options)}")
        return print_notices(client)


def cmd_fields(args):
    spec = get_spec(args.entity)
    required = set(spec.required_fields)
    for name in spec.form_fields:
        line = name + (" (required)" if name in required else "")
        if name in spec.suggestions:
            line += " - suggested: " + ", ".join(spec.suggestions[name])
        print(line)
    return 0


async def cmd_overview(args):
    async with make_client(args) as client:
        stats = await load_overview(client)
        print(json.dumps(stats, indent=2))
        return print_notices(client)


async def cmd_login(args):
    password = args.password or getpass.getpass("Password: ")
    async with make_client(args) as client:
        data = await client.login(args.email, password)
        if data is None:
            return print_notices(client)
        print(data["token"])
        return 0


async def cmd_add(args):
    async with make_client(args) as client:
        view = AdminView(client, args.entity)
        record = await view.create(parse_pairs(args.set), args.image)
        if record is not None:
            print(render_detail(record, view.spec.data_type))
            print(f"id: {record['id']}")
        return print_notices(client)


async def cmd_update(args):
    async with make_client(args) as client:
        view = AdminView(client, args.entity)
        await view.refresh()
        item = view.find(args.id)
        if item is None:
            print(f"No {view.spec.label} with id {args.id}", file=sys.stderr)
            return 1
        # The form is always resubmitted in full, pre-filled from the stored record
        fields = {**view.edit_form(item), **parse_pairs(args.set)}
        record = await view.update(args.id, fields, args.image)
        if record is not None:
            print(render_detail(record, view.spec.data_type))
        return print_notices(client)


async def cmd_remove(args):
    async with make_client(args) as client:
        view = AdminView(client, args.entity)
        await view.refresh()

        async def confirm(item):
            if args.yes:
                return True
            answer = await asyncio.to_thread(
                input, f"Delete {view.spec.label} {item.get('id')} permanently? [y/N] "
            )
            return answer.strip().lower() in ("y", "yes")

        deleted = await view.delete(args.id, confirm)
        if deleted:
            print(f"{view.spec.label} Deleted")
        return print_notices(client)


def cmd_create_admin(args):
    from auth import get_user_by_email, hash_password
    from database import create_document, get_db
    from schemas import User

    password = args.password or getpass.getpass("Password: ")
    existing = get_user_by_email(args.email)
    if existing:
        get_db()["user"].update_one({"_id": existing["_id"]}, {"$set": {"password": hash_password(password), "name": args.name}})
        print(f"Updated admin {args.email}")
        return 0
    create_document("user", User(name=args.name, email=args.email, password=hash_password(password)))
    print(f"Created admin {args.email}")
    return 0


def cmd_serve(args):
    import uvicorn
    uvicorn.run("main:app", host=args.host, port=args.port, reload=args.reload)
    return 0


def entity_type(value):
    try:
        return get_spec(value).data_type
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser():
    parser = argparse.ArgumentParser(prog="devarchive", description="Manage and browse the dev archive portfolio")
    parser.add_argument("--api", default=os.getenv("PORTFOLIO_API_URL"), help="API base URL")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at INFO level")
    sub = parser.add_subparsers(dest="command", required=True)

    kinds = ", ".join(spec.data_type for spec in ENTITIES)

    p = sub.add_parser("serve", help="Run the API server")
    p.add_argument("--host", default="0.0.0.0")
    p.add_argument("--port", type=int, default=int(os.getenv("PORT", 8000)))
    p.add_argument("--reload", action="store_true")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("gallery", help="Browse everything, optionally polling for changes")
    p.add_argument("--tab", default="all", help=f"all, or one of: {kinds}")
    p.add_argument("--query", "-q", default="")
    p.add_argument("--view", choices=("grid", "list"), default="grid")
    p.add_argument("--watch", action="store_true", help="Keep refreshing until interrupted")
    p.add_argument("--interval", type=float, default=None, help="Polling interval in seconds")
    p.set_defaults(func=cmd_gallery, is_async=True)

    p = sub.add_parser("admin", help="One entity type with search, facet filters and stats")
    p.add_argument("entity", type=entity_type, help=kinds)
    p.add_argument("--query", "-q", default="")
    p.add_argument("--facet", "-f", action="append", metavar="NAME=VALUE")
    p.add_argument("--view", choices=("grid", "list"), default="grid")
    p.add_argument("--show", metavar="ID", help="Show one record in detail")
    p.add_argument("--download", metavar="DIR", help="With --show, save the record's image into DIR")
    p.set_defaults(func=cmd_admin, is_async=True)

    p = sub.add_parser("fields", help="Form fields of an entity type, with suggested facet values")
    p.add_argument("entity", type=entity_type, help=kinds)
    p.set_defaults(func=cmd_fields)

    p = sub.add_parser("overview", help="Dashboard totals, categories, issuers and timeline")
    p.set_defaults(func=cmd_overview, is_async=True)

    p = sub.add_parser("login", help="Print a bearer token")
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_login, is_async=True)

    for name, func, help_text in (("add", cmd_add, "Create a record"), ("update", cmd_update, "Edit a record")):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("entity", type=entity_type, help=kinds)
        if name == "update":
            p.add_argument("id")
        p.add_argument("--set", "-s", action="append", metavar="FIELD=VALUE")
        p.add_argument("--image", help="Image file to upload")
        p.add_argument("--token", default=os.getenv("PORTFOLIO_TOKEN"))
        p.set_defaults(func=func, is_async=True)

    p = sub.add_parser("remove", help="Delete a record")
    p.add_argument("entity", type=entity_type, help=kinds)
    p.add_argument("id")
    p.add_argument("--yes", "-y", action="store_true", help="Skip the confirmation prompt")
    p.add_argument("--token", default=os.getenv("PORTFOLIO_TOKEN"))
    p.set_defaults(func=cmd_remove, is_async=True)

    p = sub.add_parser("create-admin", help="Create or reset an admin account (talks to MongoDB directly)")
    p.add_argument("--name", required=True)
    p.add_argument("--email", required=True)
    p.add_argument("--password")
    p.set_defaults(func=cmd_create_admin)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    level = "INFO" if args.verbose else os.getenv("LOG_LEVEL", "WARNING")
    logging.basicConfig(level=level.upper(), format="%(levelname)s %(name)s: %(message)s")

    try:
        if getattr(args, "is_async", False):
            return asyncio.run(args.func(args))
        return args.func(args)
    except KeyboardInterrupt:
        return 130
    except (argparse.ArgumentTypeError, ValueError) as e:
        parser.error(str(e))


if __name__ == "__main__":
    sys.exit(main())
