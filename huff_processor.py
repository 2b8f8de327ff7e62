import argparse
import heapq
import io
import itertools
import logging
import os
import sys
from abc import ABC
from dataclasses import dataclass
from bitarray import bitarray
from bitarray.util import ba2int

from bit_streams import BitInputStream, BitOutputStream

BITS_PER_WORD = 8
BITS_PER_INT = 32
ALPH_SIZE = 1 << BITS_PER_WORD
PSEUDO_EOF = ALPH_SIZE
HUFF_NUMBER = 0xface8200
HUFF_TREE = HUFF_NUMBER | 1

DEBUG_LOW = 1
DEBUG_HIGH = 4

# Below DEBUG: per-symbol code dumps
TRACE = 5
logging.addLevelName(TRACE, 'TRACE')

COMPRESSED_SUFFIX = '.hf'

log = logging.getLogger(__name__)


class HuffError(Exception):
    pass


class HuffFormatError(HuffError):
    """The compressed stream is not in the tree-header format or is damaged."""


class HuffmanTree(ABC):
    pass

@dataclass
class Fork(HuffmanTree):
    left: HuffmanTree
    right: HuffmanTree
    weight: int = 0

@dataclass
class Leaf(HuffmanTree):
    symbol: int
    weight: int = 0


def determine_freqs(in_bits: BitInputStream) -> list[int]:
    freqs = [0] * (ALPH_SIZE + 1)
    for chunk in in_bits.iter_bits(BITS_PER_WORD):
        freqs[chunk] += 1
    # The 257th symbol marks the end of the payload, so padding bits
    # in the last byte are never decoded
    freqs[PSEUDO_EOF] = 1
    return freqs

def concat_trees(left: HuffmanTree, right: HuffmanTree) -> Fork:
    return Fork(left, right, left.weight + right.weight)

def encoding_trie(freqs: list[int]) -> Fork:
    # Equal weights leave the heap in insertion order; leaves go in by symbol
    order = itertools.count()
    forest = [(w, next(order), Leaf(s, w)) for s, w in enumerate(freqs) if w > 0]
    if not forest:
        raise ValueError('cannot build a trie from an empty frequency table')
    heapq.heapify(forest)
    while len(forest) > 1:
        _, _, left = heapq.heappop(forest)
        _, _, right = heapq.heappop(forest)
        combined = concat_trees(left, right)
        heapq.heappush(forest, (combined.weight, next(order), combined))
    _, _, root = forest[0]
    if isinstance(root, Leaf):
        # A lone leaf would get an empty code; give it a phantom sibling
        phantom = Leaf(1 if root.symbol == 0 else 0)
        root = concat_trees(root, phantom)
    return root

def map_char_to_code(tree: HuffmanTree) -> dict[int, bitarray]:
    cipher = {}
    def traverse(tree: HuffmanTree, path: bitarray):
        match tree:
            case Fork(l, r, _):
                traverse(l, path + bitarray('0'))
                traverse(r, path + bitarray('1'))
            case Leaf(s, _):
                cipher[s] = path
    traverse(tree, bitarray())
    return cipher

def write_header(tree: HuffmanTree, out_bits: BitOutputStream):
    match tree:
        case Fork(l, r, _):
            out_bits.write_bits(1, 0)
            write_header(l, out_bits)
            write_header(r, out_bits)
        case Leaf(s, _):
            out_bits.write_bits(1, 1)
            out_bits.write_bits(BITS_PER_WORD + 1, s)

def read_tree(in_bits: BitInputStream, depth: int = 0) -> HuffmanTree:
    # No trie over ALPH_SIZE + 1 leaves is deeper than ALPH_SIZE
    if depth > ALPH_SIZE:
        raise HuffFormatError('bad input; header tree too deep')
    try:
        bit = in_bits.read_bits(1)
        if bit == 1:
            symbol = in_bits.read_bits(BITS_PER_WORD + 1)
    except EOFError as e:
        raise HuffFormatError('bad input; incomplete beginning tree') from e
    if bit == 0:
        left = read_tree(in_bits, depth + 1)
        right = read_tree(in_bits, depth + 1)
        return Fork(left, right)
    if symbol > PSEUDO_EOF:
        raise HuffFormatError(f'bad input; symbol {symbol} out of range')
    return Leaf(symbol)

def count_leaves(tree: HuffmanTree) -> int:
    match tree:
        case Fork(l, r, _):
            return count_leaves(l) + count_leaves(r)
        case Leaf():
            return 1


def compress(in_bits: BitInputStream, out_bits: BitOutputStream):
    # Scans the input twice
    try:
        in_bits.reset()
        freqs = determine_freqs(in_bits)
        trie_root = encoding_trie(freqs)
        cipher = map_char_to_code(trie_root)
        log.debug('%d distinct symbols, %d leaves in trie',
                  sum(1 for f in freqs if f > 0), count_leaves(trie_root))
        if log.isEnabledFor(TRACE):
            for s in sorted(cipher):
                log.log(TRACE, 'code %d -> %s', s, cipher[s].to01())

        out_bits.write_bits(BITS_PER_INT, HUFF_TREE)
        write_header(trie_root, out_bits)
        log.debug('header: %d bits', out_bits.bits_written - BITS_PER_INT)

        packed = {s: (len(code), ba2int(code)) for s, code in cipher.items()}
        in_bits.reset()
        for chunk in in_bits.iter_bits(BITS_PER_WORD):
            out_bits.write_bits(*packed[chunk])
        out_bits.write_bits(*packed[PSEUDO_EOF])
        log.debug('compress: read %d bits, wrote %d bits',
                  in_bits.bits_read, out_bits.bits_written)
    finally:
        out_bits.close()

def decompress(in_bits: BitInputStream, out_bits: BitOutputStream):
    # Bytes decoded before an error stay written
    try:
        try:
            magic = in_bits.read_bits(BITS_PER_INT)
        except EOFError as e:
            raise HuffFormatError('invalid magic number; stream too short') from e
        if magic != HUFF_TREE:
            raise HuffFormatError(f'invalid magic number {magic:#x}')

        root = read_tree(in_bits)
        if not isinstance(root, Fork):
            raise HuffFormatError('bad input; header tree is a single leaf')
        log.debug('header: %d leaves, %d bits',
                  count_leaves(root), in_bits.bits_read - BITS_PER_INT)

        node = root
        while True:
            try:
                bit = in_bits.read_bits(1)
            except EOFError as e:
                raise HuffFormatError('bad input; no PSEUDO_EOF') from e
            node = node.right if bit else node.left
            match node:
                case Leaf(s, _):
                    if s == PSEUDO_EOF:
                        break
                    out_bits.write_bits(BITS_PER_WORD, s)
                    node = root
        log.debug('decompress: read %d bits, wrote %d bits',
                  in_bits.bits_read, out_bits.bits_written)
    finally:
        out_bits.close()


def compress_bytes(source: bytes) -> bytes:
    sink = io.BytesIO()
    compress(BitInputStream(source), BitOutputStream(sink))
    return sink.getvalue()

def decompress_bytes(source: bytes) -> bytes:
    sink = io.BytesIO()
    decompress(BitInputStream(source), BitOutputStream(sink))
    return sink.getvalue()

def compress_file(src: str, dst: str) -> int:
    in_bits = BitInputStream.from_file(src)
    out_bits = BitOutputStream.open(dst)
    compress(in_bits, out_bits)
    return out_bits.bits_written

def decompress_file(src: str, dst: str) -> int:
    in_bits = BitInputStream.from_file(src)
    out_bits = BitOutputStream.open(dst)
    decompress(in_bits, out_bits)
    return out_bits.bits_written


def process_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Huffman coding based compressor")
    parser.add_argument("filename", type=str)
    parser.add_argument("--decompress", action='store_true')
    parser.add_argument("-o", "--output", type=str, default=None)
    parser.add_argument("-d", "--debug", action='count', default=0,
                        help="repeat for more detail")
    return parser.parse_args(argv)

def output_name(filename: str, decompress_mode: bool) -> str | None:
    if not decompress_mode:
        return filename + COMPRESSED_SUFFIX
    if filename.endswith(COMPRESSED_SUFFIX) and len(os.path.basename(filename)) > len(COMPRESSED_SUFFIX):
        return filename[:-len(COMPRESSED_SUFFIX)]
    return None


def main(argv=None):
    args = process_args(argv)
    level = logging.WARNING
    if args.debug >= DEBUG_HIGH:
        level = TRACE
    elif args.debug > DEBUG_LOW:
        level = logging.DEBUG
    elif args.debug == DEBUG_LOW:
        level = logging.INFO
    logging.basicConfig(level=level, format='%(levelname)s: %(message)s')

    target = args.output or output_name(args.filename, args.decompress)
    if target is None:
        print(f'Wrong file extension, only {COMPRESSED_SUFFIX} files allowed', file=sys.stderr)
        sys.exit(-1)
    operation = decompress_file if args.decompress else compress_file
    try:
        bits = operation(args.filename, target)
    except HuffError as e:
        print(str(e), file=sys.stderr)
        # Partial output is never useful
        if os.path.exists(target):
            os.remove(target)
        sys.exit(-1)
    except OSError as e:
        print(str(e), file=sys.stderr)
        sys.exit(-1)
    log.info('%s -> %s (%d bytes)', args.filename, target, (bits + 7) // 8)

if __name__ == '__main__':
    main()
