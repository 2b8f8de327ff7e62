from typing import BinaryIO, Iterator
from bitarray import bitarray
from bitarray.util import ba2int, int2ba

# Whole bytes are handed to the sink once this many bits are buffered
FLUSH_BITS = 8 * 4096


class BitInputStream:
    """Reads big-endian bit fields from an in-memory byte buffer."""

    def __init__(self, data: bytes):
        self._bits = bitarray(endian='big')
        self._bits.frombytes(data)
        self._pos = 0

    @classmethod
    def from_file(cls, path: str) -> 'BitInputStream':
        with open(path, 'rb') as f:
            return cls(f.read())

    @property
    def bits_read(self) -> int:
        return self._pos

    @property
    def bits_remaining(self) -> int:
        return len(self._bits) - self._pos

    def read_bits(self, count: int) -> int:
        if count < 1:
            raise ValueError(f'cannot read {count} bits')
        if self.bits_remaining < count:
            raise EOFError(f'{count} bits requested, {self.bits_remaining} left')
        if count == 1:
            value = self._bits[self._pos]
        else:
            value = ba2int(self._bits[self._pos:self._pos + count])
        self._pos += count
        return value

    def iter_bits(self, count: int) -> Iterator[int]:
        # Stops quietly when a full field is no longer available
        while self.bits_remaining >= count:
            yield self.read_bits(count)

    def reset(self):
        self._pos = 0


class BitOutputStream:
    """
    Collects big-endian bit fields and writes them to a binary sink.
    close() pads the last byte with zero bits.
    """

    def __init__(self, sink: BinaryIO, owns_sink: bool = False):
        self._sink = sink
        self._owns_sink = owns_sink
        self._bits = bitarray(endian='big')
        self.bits_written = 0
        self.closed = False

    @classmethod
    def open(cls, path: str) -> 'BitOutputStream':
        return cls(open(path, 'wb'), owns_sink=True)

    def __enter__(self) -> 'BitOutputStream':
        return self

    def __exit__(self, *exc_info):
        self.close()

    def write_bits(self, count: int, value: int):
        if self.closed:
            raise ValueError('write to a closed bit stream')
        if count < 1:
            raise ValueError(f'cannot write {count} bits')
        if value < 0 or value >> count:
            raise ValueError(f'{value} does not fit in {count} bits')
        self._bits += int2ba(value, length=count, endian='big')
        self.bits_written += count
        if len(self._bits) >= FLUSH_BITS:
            self._flush_whole_bytes()

    def _flush_whole_bytes(self):
        whole = len(self._bits) - len(self._bits) % 8
        self._sink.write(self._bits[:whole].tobytes())
        del self._bits[:whole]

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self._bits.fill()
            self._sink.write(self._bits.tobytes())
            self._bits.clear()
            self._sink.flush()
        finally:
            if self._owns_sink:
                self._sink.close()
