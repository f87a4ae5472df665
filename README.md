# fbconsole

A status console that draws straight onto the Linux framebuffer. It opens the
first of `/dev/fb0`, `/dev/fb1` and `/dev/fb2` that exists and is meant for
headless appliances with a monitor attached and no desktop. It runs on Linux
only.

The main screen refreshes every five seconds and shows:

- operating system uptime
- processor model and core count
- memory in use and in total, in megabytes
- combined size and number of physical disks (from `/proc/partitions`)
- current system time
- the IPv4 address of the interface that carries the default route
- the device ID read from `/usr/local/etc/device/id`, also drawn as a QR code

Press Enter to open the configuration menu:

1. show the physical network interfaces (state, MAC, IPv4 and IPv6 addresses)
2. system service management (an information screen only)
3. run a network connectivity test (`ping` against five well-known hosts)
4. reboot the device (asks for confirmation with `y`)
5. shut down the device (asks for confirmation with `y`)

Press `q` or Esc to go back to the main screen.

## Installation

```
pip install .
```

The console needs a TrueType font. It looks for
`./fonts/SourceHanSansSC-Regular.ttf` first, then
`./fonts/SourceHanSansSC-Regular.otf`. Only TrueType (TTF) and TrueType
collection (TTC) files are accepted; OpenType CFF, WOFF and WOFF2 files are
rejected with an error.

## Running

```
fbconsole
```

Options:

- `-d` keeps the console running: Ctrl+C, Ctrl+Z, Ctrl+\ and Ctrl+D are
  ignored, as are SIGINT, SIGTERM, SIGHUP, SIGTSTP and SIGQUIT. Without `-d`
  any of these ends the program.
- `-h` prints the help text.

The program needs write access to the framebuffer device and a terminal on
standard input, which it switches to raw mode and restores on exit.
Rebooting and shutting down need root.

## Logs

Log lines go to `console-YYYY-MM-DD.log` in the working directory. A new file
is started at midnight, and dated log files more than three days old are
removed (`fbconsole.logfiles`).

## Using the pieces

The modules can also be used on their own. For example:

```python
from fbconsole.sysinfo import get_system_info
from fbconsole.network import get_network_interfaces

info = get_system_info()
print(info.uptime, info.memory_usage)

for iface in get_network_interfaces():
    print(iface.name, iface.status, iface.ipv4_address)
```

- `fbconsole.sysinfo` also has parsers for `/proc` text (`parse_cpuinfo`,
  `parse_meminfo_mb`, `parse_partitions`, ...) that work on any string.
- `fbconsole.network.run_connectivity_tests` pings the test hosts and
  `parse_ping_output` reads `ping` output; `restart_system_service` restarts a
  systemd service after checking its name.
- `fbconsole.qr.encode` builds a QR code that can be drawn without the
  framebuffer, and `fbconsole.menu.qr_image` turns text into a QR image.
- `fbconsole.framebuffer.FrameBuffer.from_buffer` wraps any writable buffer
  so that drawing can be tried in memory.

## Tests

```
pip install .[test]
pytest
```