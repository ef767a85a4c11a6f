"""
Virtual Memory Manager
Implements address translation through a FIFO TLB, a direct-indexed page
table and FIFO frame replacement backed by BACKING_STORE.bin
"""

import logging
from typing import Dict, List, NamedTuple, Optional, Tuple

import numpy as np

from backing_store import DEFAULT_BACKING_STORE, BackingStore

logger = logging.getLogger(__name__)

# Configuration
NUM_FRAMES = 128          # physical memory frames of PAGE_SIZE bytes
PAGE_SIZE = 256           # bytes per page
PAGE_TABLE_ENTRIES = 256  # entries in the page table
TLB_ENTRIES = 16          # entries in the TLB

ADDRESS_MASK = 0xFFFF     # logical addresses are the low 16 bits
OFFSET_BITS = 8
OFFSET_MASK = 0xFF


def split_address(logical_addr: int) -> Tuple[int, int]:
    """Split a logical address into (page, offset)"""
    page = (logical_addr & ADDRESS_MASK) >> OFFSET_BITS
    offset = logical_addr & OFFSET_MASK
    return page, offset


class Translation(NamedTuple):
    """Result of translating and reading one logical address"""
    logical_address: int
    physical_address: int
    value: int
    tlb_hit: bool
    page_fault: bool

    @property
    def page(self) -> int:
        return split_address(self.logical_address)[0]

    @property
    def offset(self) -> int:
        return self.physical_address & OFFSET_MASK

    @property
    def frame(self) -> int:
        return self.physical_address >> OFFSET_BITS


class TLBEntry:
    """Translation Lookaside Buffer entry"""
    def __init__(self, page: int, frame: int):
        self.page = page
        self.frame = frame

    def __repr__(self):
        return f"TLB({self.page}->{self.frame})"


class TLB:
    """Fully-associative translation cache with FIFO replacement

    Slots fill in order until the buffer is full; after that each insert
    overwrites the slot at ``front`` and advances it. Hits do not reorder
    entries.
    """

    def __init__(self, size: int = TLB_ENTRIES):
        self.size = size
        self.data: List[Optional[TLBEntry]] = [None] * size
        self.num_entries = 0
        self.front = 0
        self._hits = 0

    @property
    def hits(self) -> int:
        return self._hits

    def lookup(self, page: int) -> Optional[int]:
        """Look up page number in TLB, return frame number if hit"""
        for i in range(self.num_entries):
            entry = self.data[i]
            if entry.page == page:
                self._hits += 1
                return entry.frame
        return None

    def insert(self, page: int, frame: int):
        """Insert a page->frame mapping in FIFO order"""
        if self.num_entries < self.size:
            self.data[self.num_entries] = TLBEntry(page, frame)
            self.num_entries += 1
        else:
            # Overwrite the oldest entry
            self.data[self.front] = TLBEntry(page, frame)
            self.front = (self.front + 1) % self.size

    def entries(self) -> List[Tuple[int, int]]:
        return [(e.page, e.frame) for e in self.data[:self.num_entries]]

    def __len__(self) -> int:
        return self.num_entries

    def __str__(self) -> str:
        return f"TLB Contents: {dict(self.entries())}"


class PageTable:
    """Direct-indexed page table with a FIFO occupant queue

    ``replace_queue`` records the page installed into each frame in install
    order. It has one slot per frame, so once memory is full every install is
    paired with an eviction and ``oldest``/``next_empty`` chase each other
    around the ring.
    """

    def __init__(self, num_entries: int = PAGE_TABLE_ENTRIES, num_frames: int = NUM_FRAMES):
        self.num_entries = num_entries
        self.num_frames = num_frames
        self.data: List[Optional[int]] = [None] * num_entries  # page -> frame
        self.replace_queue: List[int] = [0] * num_frames
        self.oldest = 0
        self.next_empty = 0
        self._faults = 0
        self._installed = 0

    @property
    def faults(self) -> int:
        """Number of pages brought in from the backing store"""
        return self._faults

    def _check_page(self, page: int):
        if not 0 <= page < self.num_entries:
            raise ValueError(
                f"Page number {page} out of range (0 .. {self.num_entries - 1})"
            )

    def lookup(self, page: int) -> Optional[int]:
        """Get frame number for page, return None if not mapped"""
        self._check_page(page)
        return self.data[page]

    def install(self, page: int, frame: int):
        """Map page to frame and append it to the occupant queue"""
        self._check_page(page)
        self.data[page] = frame
        self.replace_queue[self.next_empty] = page
        self.next_empty = (self.next_empty + 1) % self.num_frames
        self._installed += 1
        self._faults += 1

    def evict_oldest(self) -> int:
        """Unmap the page installed longest ago and return its frame"""
        if self._installed == 0:
            raise ValueError("No resident pages to evict")
        page = self.replace_queue[self.oldest]
        frame = self.data[page]
        self.data[page] = None
        self.oldest = (self.oldest + 1) % self.num_frames
        logger.debug("Evicted page %d from frame %d", page, frame)
        return frame

    def resident_pages(self) -> List[int]:
        """Resident pages, oldest install first"""
        count = min(self._installed, self.num_frames)
        return [self.replace_queue[(self.oldest + i) % self.num_frames]
                for i in range(count)]


class PhysicalMemory:
    """Physical memory as a grid of NUM_FRAMES x PAGE_SIZE signed bytes"""

    def __init__(self, num_frames: int = NUM_FRAMES, page_size: int = PAGE_SIZE):
        self.num_frames = num_frames
        self.page_size = page_size
        self.memory = np.zeros((num_frames, page_size), dtype=np.int8)
        # Advanced by the MMU only
        self.frames_populated = 0

    def has_free_frame(self) -> bool:
        return self.frames_populated < self.num_frames

    def write_frame(self, frame: int, buffer: np.ndarray):
        """Copy one page worth of bytes into a frame"""
        if not 0 <= frame < self.num_frames:
            raise ValueError(f"Frame {frame} out of range (0 .. {self.num_frames - 1})")
        if len(buffer) != self.page_size:
            raise ValueError(f"Expected {self.page_size} bytes, got {len(buffer)}")
        self.memory[frame, :] = buffer

    def read_byte(self, frame: int, offset: int) -> int:
        """Read the signed byte at (frame, offset)"""
        if not 0 <= frame < self.num_frames:
            raise ValueError(f"Frame {frame} out of range (0 .. {self.num_frames - 1})")
        if not 0 <= offset < self.page_size:
            raise ValueError(f"Offset {offset} out of range (0 .. {self.page_size - 1})")
        return int(self.memory[frame, offset])


class MMU:
    """Memory management unit tying the TLB, page table and physical memory
    to a backing store

    The MMU owns its components and the backing store handle; use it as a
    context manager (or call ``close``) to release the file.
    """

    def __init__(self, backing_store: BackingStore):
        self.backing_store = backing_store
        self.tlb = TLB(TLB_ENTRIES)
        self.page_table = PageTable(PAGE_TABLE_ENTRIES, NUM_FRAMES)
        self.ram = PhysicalMemory(NUM_FRAMES, PAGE_SIZE)
        self._translation_count = 0

    @classmethod
    def open(cls, path: str = DEFAULT_BACKING_STORE) -> "MMU":
        """Open the backing store at path and build an MMU around it"""
        return cls(BackingStore(path, page_size=PAGE_SIZE, num_pages=PAGE_TABLE_ENTRIES))

    @property
    def translation_count(self) -> int:
        return self._translation_count

    @property
    def tlb_hits(self) -> int:
        return self.tlb.hits

    @property
    def page_faults(self) -> int:
        return self.page_table.faults

    def translate_and_read(self, logical_addr: int) -> Translation:
        """Translate a logical address and read the byte it refers to"""
        page, offset = split_address(logical_addr)
        page_fault = False

        # Check TLB first
        frame = self.tlb.lookup(page)
        tlb_hit = frame is not None

        if not tlb_hit:
            # TLB miss, check page table
            frame = self.page_table.lookup(page)
            if frame is None:
                page_fault = True
                frame = self._admit_page(page)
            self.tlb.insert(page, frame)

        value = self.ram.read_byte(frame, offset)
        physical_addr = (frame << OFFSET_BITS) | offset
        self._translation_count += 1

        return Translation(logical_addr, physical_addr, value, tlb_hit, page_fault)

    def _admit_page(self, page: int) -> int:
        """Handle a page fault and return the frame the page now occupies"""
        # A short read must not consume a frame or evict a page
        buffer = self.backing_store.read_page(page)

        if self.ram.has_free_frame():
            # Free frame available
            frame = self.ram.frames_populated
            self.ram.frames_populated += 1
        else:
            # Memory is full, replace in FIFO order
            frame = self.page_table.evict_oldest()

        self.ram.write_frame(frame, buffer)
        self.page_table.install(page, frame)
        logger.debug("Page fault: loaded page %d into frame %d", page, frame)
        return frame

    def get_stats(self) -> Dict:
        """Return current statistics"""
        n = self._translation_count
        return {
            'translations': n,
            'tlb_hits': self.tlb_hits,
            'page_faults': self.page_faults,
            'page_table_hits': n - self.tlb_hits - self.page_faults,
            'tlb_hit_rate': self.tlb_hits / n if n > 0 else 0.0,
            'page_fault_rate': self.page_faults / n if n > 0 else 0.0,
        }

    def memory_state(self) -> Dict:
        """Snapshot of the TLB, resident pages and frame usage"""
        return {
            'tlb': self.tlb.entries(),
            'resident_pages': self.page_table.resident_pages(),
            'frames_populated': self.ram.frames_populated,
        }

    def close(self):
        self.backing_store.close()

    def __enter__(self) -> "MMU":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
