"""Handlers for 'markban check', 'markban show' and 'markban diff'."""

from dataclasses import asdict

from markban.cli._common import load_settings_or_die, output_json, read_or_die
from markban.movements import detect_movements
from markban.parser import parse_board


def check(args) -> int:
    """Report whether each file looks like a board markban would track."""
    settings = load_settings_or_die(args)

    items = []
    for path in args.files:
        text = read_or_die(path, args.json)
        items.append({"path": path, "board": settings.tracks(path, text)})

    if args.json:
        output_json(items)
    else:
        for item in items:
            verdict = "board" if item["board"] else "not a board"
            print(f"{item['path']}: {verdict}")

    return 0


def show(args) -> int:
    """Print a board's columns and cards with their markers."""
    settings = load_settings_or_die(args)
    text = read_or_die(args.file, args.json)
    policy = settings.policy_for(text)
    board = parse_board(text)

    columns = []
    for column in board:
        expected = policy.marker_for(column.name)
        cards = [
            {
                "index": index,
                "line": card.start + 1,
                "marker": card.marker,
                "identity": card.identity,
                "in_sync": card.marker is None or card.marker == expected,
            }
            for index, card in enumerate(column.cards)
        ]
        columns.append({"name": column.name, "marker": expected, "cards": cards})

    if args.json:
        output_json({"path": args.file, "columns": columns})
    else:
        for column in columns:
            count = len(column["cards"])
            noun = "card" if count == 1 else "cards"
            print(f"{column['name']}  {column['marker']}  {count} {noun}")
            for card in column["cards"]:
                marker = card["marker"] or "   "
                flag = "" if card["in_sync"] else "  (out of sync)"
                title = card["identity"].split("\n", 1)[0]
                print(f"  {marker} {title}{flag}")

    return 0


def diff(args) -> int:
    """Print card movements between two snapshots of a board."""
    old = read_or_die(args.old, args.json)
    new = read_or_die(args.new, args.json)

    movements = detect_movements(old, new)

    if args.json:
        output_json([asdict(m) for m in movements])
    elif not movements:
        print("no movements")
    else:
        for m in movements:
            title = m.identity.split("\n", 1)[0]
            print(f"{title}: {m.source} -> {m.destination} (#{m.index + 1})")

    return 0
