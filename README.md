# mode7racer

Building blocks for a two-player, Mode-7 style racing game: RGB565 textures
and palettes, a small texture cache, ASCII track parsing, an in-memory
double-buffered frame buffer, and the packet formats, Bluetooth link state,
lobby and input-prediction logic used to keep two cars in sync.

The package has no dependencies beyond the standard library.

## Install

```
pip install .
pip install ".[test]"   # with pytest for the test suite
```

## Modules

### `mode7racer.imaging`

- `rgba_to_rgb565(r, g, b, a)` packs an 8-bit colour into RGB565; an alpha
  below 128 gives black (`0x0000`).
- `convert_to_rgb565(rgba_data, width, height)` and
  `convert_from_rgb565(pixels, width, height)` convert whole images
  (the reverse direction yields opaque RGBA bytes).
- `detect_format(data)` returns an `AssetFormat` (`PNG`, `BMP` or `RAW`)
  from the leading bytes.
- `Texture` (width, height, row-major RGB565 `pixels`) and `Palette`
  (256 colours; `Palette.grayscale()` is a black-to-white ramp).
- `load_texture_from_memory(data)` accepts PNG data only. It reads the
  image size from the `IHDR` chunk (at most 512x512) but does not decode
  the pixel data: the texture is filled with a gradient of that size.
  Other formats raise `ValueError`.

### `mode7racer.assets`

- `AssetHeader`: the 44-byte little-endian header with magic `"AST "`;
  `to_bytes()`, `from_bytes()` and `validate()` (raises `AssetError`).
- `calculate_checksum(data)`: CRC-32 seeded with `0xFFFFFFFF`.
- `save_texture(filename, texture)` writes a header followed by the raw
  RGB565 pixels.
- `load_palette(filename)` reads 256 little-endian RGB565 colours; a file
  shorter than 512 bytes gives `Palette.grayscale()`. `save_palette`
  writes them back.
- `AssetLoader(config)` loads texture files through `load_texture`, keeping
  them in an `AssetCache` that evicts the least recently used entry
  (at most 16). It reports `memory_usage`, `cache_hits` and `cache_misses`,
  and can be used as a context manager.

### `mode7racer.tiles`

- `parse_ascii_track(text)` / `load_ascii_track(filename)` turn rows of
  characters into a `TrackLayout`. Letters (either case): `G` grass,
  `R` road, `W` water, `S` sand, `#` wall, `X` start, `C` checkpoint,
  `F` finish; anything else is grass. The start position is the centre of
  the last `X` tile; every `C` tile becomes a `Checkpoint` in world
  coordinates (16x16 pixel tiles).
- `TrackLayout.tile_at(x, y)` returns a `TileType`.
- `generate_tilesheet(tile_count)` draws patterned 16x16 tiles into a sheet
  32 tiles wide (an out-of-range count gives the 8 standard tiles);
  `save_tilesheet` writes it with `save_texture`.
- `generate_heightmap(track)` gives each tile a height value by type.
- `default_track()` is the built-in concentric-ring track.

### `mode7racer.display`

`Display(config)` holds two 720x720 RGB565 buffers in memory. It offers
`clear`, `fill_rect` (clipped), `draw_pixel`, `draw_scanline`, `pixel`,
`swap_buffers`, `flush` (counts frames) and `close`. Drawing after `close`
does nothing; reading raises `RuntimeError`.

### `mode7racer.packets`

`GameStatePacket`, `InputPacket` and `ConfigPacket` are frozen dataclasses
with `to_bytes()`, `from_bytes()`, `with_checksum()` and `verify()`
(raises `ChecksumError`). Game state and input packets use `crc16`
(CRC-16/CCITT from `0xFFFF`), config packets `crc32`.
`ConfigPacket.default()` is a three-lap race on track 0 at 80 ms / 30 Hz.

### `mode7racer.link`

- `BleLink(radio)` tracks the connection (`BleState`), sends packets with
  `send_game_state` / `send_input` / `send_config` (raising
  `NotConnectedError` when not connected) and reports `LinkEvent`s to a
  registered callback. Radio activity is fed in through `on_connect`,
  `on_disconnect`, `on_advertising_complete` and `on_characteristic_write`.
- `GattServer(radio)` stores the three characteristic values: `read`,
  `write` (checks size and checksum), `set_notifications` and `notify`.
- `Radio` is the protocol your Bluetooth transport must implement.

### `mode7racer.lobby`

`Lobby(config, link)` hosts (`start_hosting`, `accept_connection`) or joins
(`start_scanning`, `connect_to_device`) a one-on-one session, keeps a list
of up to 8 seen devices, and `start_game` marks the `GameSession` ready.
Wrong-state requests raise `LobbyError`; unknown addresses raise
`DeviceNotFoundError`.

### `mode7racer.protocol`

`NetProtocol(is_host, clock=None)` builds and checks packets
(`pack_game_state`, `unpack_game_state`, `pack_input`, `unpack_input`),
buffers inputs by frame (`store_local_input`, `predict_remote_input`),
averages latency and reports `stats()`. `should_rollback(predicted, actual,
threshold)` compares two `CarState`s in 16.16 fixed point.

## Example

```python
from mode7racer.tiles import parse_ascii_track, generate_heightmap

track = parse_ascii_track("####\n#XC#\n#RF#\n####\n")
print(track.width, track.height, track.start_x, track.start_y)
print([(c.x, c.y) for c in track.checkpoints])
heights = generate_heightmap(track)
```

```python
from mode7racer.packets import InputPacket

packet = InputPacket(player_id=1, throttle=100, steering=-50).with_checksum()
data = packet.to_bytes()
assert InputPacket.from_bytes(data).verify() == packet
```

## What it does not do

- It talks to no Bluetooth hardware: `BleLink` and `GattServer` drive a
  `Radio` object that you provide.
- `Display` draws only into memory; nothing is shown on a screen.
- PNG pixel data is not decoded, and BMP, TGA and raw textures cannot be
  loaded.
- There is no game loop, car physics or renderer, and no command-line tool.

## Tests

```
pytest
```