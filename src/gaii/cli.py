#!/usr/bin/env python3
"""
GA II coolant monitor - Command Line Interface

Entry point for the gaii-linux package.
"""

import argparse
import logging
import sys
import time

from gaii.__version__ import __version__


def _setup_logging(verbose=0):
    """Set up logging based on verbosity."""
    if verbose >= 2:
        logging.basicConfig(level=logging.DEBUG, format='[%(levelname)s] %(name)s: %(message)s')
        logging.getLogger('usb').setLevel(logging.WARNING)
    elif verbose == 1:
        logging.basicConfig(level=logging.INFO, format='[%(levelname)s] %(message)s')
    else:
        logging.basicConfig(level=logging.WARNING)


def _on_off(value):
    value = value.lower()
    if value in ("on", "true", "1", "yes"):
        return True
    if value in ("off", "false", "0", "no"):
        return False
    raise argparse.ArgumentTypeError(f"expected on/off, got {value!r}")


def build_parser():
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="gaii",
        description="Lian Li GA II coolant monitor for Linux",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    gaii detect                 List attached coolers
    gaii monitor                Print coolant temperature as it changes
    gaii send 0181              Send a raw hex command
    gaii pwm-sync               Enable PWM sync
    gaii config --pump-speed 80 Update saved configuration
    gaii serve --port 8020      Run the REST API
        """
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v, -vv)"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    detect_parser = subparsers.add_parser("detect", help="List attached coolers")
    detect_parser.add_argument("--backend", "-b", choices=["hidapi", "pyusb"],
                               help="HID backend (default: from config)")

    monitor_parser = subparsers.add_parser("monitor", help="Print coolant temperature")
    monitor_parser.add_argument("--interval", "-i", type=float, default=1.0,
                                help="Seconds between host updates (default: 1.0)")
    monitor_parser.add_argument("--count", "-n", type=int, default=0,
                                help="Stop after N updates (default: run until Ctrl+C)")

    send_parser = subparsers.add_parser("send", help="Send a hex command")
    send_parser.add_argument("hex", help="Command bytes as hex (e.g., 0181)")

    subparsers.add_parser("pwm-sync", help="Send PWM sync enable")

    config_parser = subparsers.add_parser("config", help="Show or update configuration")
    config_parser.add_argument("--pump-speed", type=int, help="Pump speed 1-100 (%%)")
    config_parser.add_argument("--pwm-sync", type=_on_off, help="PWM sync at startup (on/off)")
    config_parser.add_argument("--device", help="Device HID path or serial ('' = first match)")
    config_parser.add_argument("--backend", choices=["hidapi", "pyusb"], help="HID backend")

    serve_parser = subparsers.add_parser("serve", help="Run the REST API")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=8020, help="Port (default: 8020)")
    serve_parser.add_argument("--token", help="Require X-API-Token header")

    return parser


def main(argv=None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    _setup_logging(args.verbose)

    if args.command == "detect":
        return detect(backend=args.backend)
    elif args.command == "monitor":
        return monitor(interval=args.interval, count=args.count)
    elif args.command == "send":
        return send_hex(args.hex)
    elif args.command == "pwm-sync":
        return pwm_sync()
    elif args.command == "config":
        return config(pump_speed=args.pump_speed, pwm_sync=args.pwm_sync,
                      device=args.device, backend=args.backend)
    elif args.command == "serve":
        return serve(host=args.host, port=args.port, token=args.token)

    parser.print_help()
    return 1


def _channel():
    from gaii.conf import load_settings
    from gaii.hid_device import transport_factory
    from gaii.pump import PumpCommandChannel

    cfg = load_settings()
    return PumpCommandChannel(transport_factory(cfg.backend, device_id=cfg.device_id))


def detect(backend=None):
    """List attached coolers."""
    from gaii.conf import load_settings
    from gaii.hid_device import find_cooler_devices

    backend = backend or load_settings().backend
    devices = find_cooler_devices(backend)
    if not devices:
        print("No GA II cooler found (VID 0416, PID 7395).")
        return 1
    for i, dev in enumerate(devices):
        label = dev['product'] or "GA II cooler"
        serial = f" serial={dev['serial']}" if dev['serial'] else ""
        print(f"[{i}] {dev['path']} — {label} [{dev['vid']:04x}:{dev['pid']:04x}]{serial}")
    return 0


def monitor(interval=1.0, count=0):
    """Run the plugin lifecycle and print the coolant temperature."""
    from gaii.plugin import GaiiPlugin, SensorsContainer

    plugin = GaiiPlugin()
    container = SensorsContainer()
    plugin.initialize()
    sensor = plugin.load(container)
    print(f"Monitoring {sensor.name}. Press Ctrl+C to stop.")

    n = 0
    try:
        while not count or n < count:
            time.sleep(interval)
            plugin.update()
            value = sensor.value
            print(f"{sensor.name}: {'--' if value is None else f'{value:.0f}'}", flush=True)
            n += 1
    except KeyboardInterrupt:
        pass
    finally:
        plugin.close()
    return 0


def send_hex(hex_str):
    """Encode and send one hex command."""
    from gaii.exceptions import InvalidEncoding

    channel = _channel()
    try:
        ok = channel.send_command(hex_str)
    except InvalidEncoding as e:
        print(f"Error: {e}")
        return 1
    if not ok:
        print(f"Error: send failed: {channel.last_error}")
        return 1
    print(f"Sent {hex_str}")
    return 0


def pwm_sync():
    """Send PWM sync enable."""
    channel = _channel()
    if not channel.enable_pwm_sync():
        print(f"Error: send failed: {channel.last_error}")
        return 1
    print("PWM sync enabled")
    return 0


def config(pump_speed=None, pwm_sync=None, device=None, backend=None):
    """Show configuration, applying any updates first."""
    from gaii import conf

    try:
        if pump_speed is not None:
            conf.save_pump_speed(pump_speed)
        if pwm_sync is not None:
            conf.save_pwm_sync(pwm_sync)
        if device is not None:
            conf.save_device_id(device)
        if backend is not None:
            conf.save_backend(backend)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    cfg = conf.load_settings()
    print(f"Config: {conf.CONFIG_PATH}")
    print(f"  device_id:  {cfg.device_id or '(first match)'}")
    print(f"  pwm_sync:   {'on' if cfg.pwm_sync else 'off'}")
    print(f"  pump_speed: {cfg.pump_speed}%")
    print(f"  backend:    {cfg.backend}")
    return 0


def serve(host="127.0.0.1", port=8020, token=None):
    """Run the REST API with the plugin loaded."""
    import uvicorn

    from gaii import api
    from gaii.plugin import GaiiPlugin, SensorsContainer

    plugin = GaiiPlugin()
    plugin.initialize()
    plugin.load(SensorsContainer())
    api.configure_plugin(plugin)
    api.configure_auth(token)
    try:
        uvicorn.run(api.app, host=host, port=port)
    finally:
        api.configure_plugin(None)
        plugin.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
