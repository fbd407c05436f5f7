from civic_alerts.cli import parse_args


def test_parse_args_defaults():
    args = parse_args(["ingest"])
    assert args.command == "ingest"
    assert args.source == "all"
    assert args.limit is None
    assert args.max_seconds is None
    assert args.overlay_config_dir is None
    assert args.strict is False


def test_parse_args_accepts_batch_options():
    args = parse_args(["all", "--source", "toplo-bg", "--limit", "5", "--max-seconds", "30", "--overlay-config-dir", "config/live"])
    assert args.source == "toplo-bg"
    assert args.limit == 5
    assert args.max_seconds == 30.0
    assert args.overlay_config_dir == "config/live"
