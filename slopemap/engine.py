"""Slope computation on the CPU (threaded row bands) or on a CUDA device (partitioned)."""

from concurrent.futures import ThreadPoolExecutor
from typing import Optional

import numpy as np
import structlog

from .config import DEFAULT_BYTES_PER_GB_ALLOWANCE, ExecutionMode
from .errors import AcceleratorAllocationError, AcceleratorUnavailableError, MalformedInputError
from .grid import GridStats
from .kernel import CUDA_KERNEL_NAME, CUDA_SOURCE, RADIANS_TO_DEGREES, slope_band
from .partition import iter_partitions, plan_partitions, row_budget, split_rows, stitch

try:
    import cupy as cp
    CUDA_AVAILABLE = cp.cuda.is_available()
except ImportError:
    CUDA_AVAILABLE = False
    cp = None

logger = structlog.get_logger(__name__)

BLOCK_SIZE = 256


class CudaDevice:
    """Blocking, synchronous access to one CUDA device through CuPy."""

    def __init__(self, device_id: int = 0) -> None:
        if not CUDA_AVAILABLE:
            raise AcceleratorUnavailableError("CUDA is not available. Accelerator mode requires a GPU with CuPy support.")
        self.device_id = device_id
        self._device = cp.cuda.Device(device_id)
        with self._device:
            self._kernel = cp.RawKernel(CUDA_SOURCE, CUDA_KERNEL_NAME, options=("--fmad=false",))

    @property
    def total_memory(self) -> int:
        with self._device:
            return int(self._device.mem_info[1])

    def allocate(self, host: np.ndarray):
        """Copy a host buffer to a new device buffer."""
        try:
            with self._device:
                return cp.asarray(host, dtype=cp.float32, order='C')
        except cp.cuda.memory.OutOfMemoryError as exc:
            raise AcceleratorAllocationError(
                f"Could not allocate {host.nbytes} bytes on device {self.device_id}") from exc

    def zeros(self, shape):
        try:
            with self._device:
                return cp.zeros(shape, dtype=cp.float32)
        except cp.cuda.memory.OutOfMemoryError as exc:
            raise AcceleratorAllocationError(
                f"Could not allocate output buffer of shape {shape} on device {self.device_id}") from exc

    def launch(self, elevation, slope, grid_spacing: float) -> None:
        """Run the stencil once per cell and block until the device is done."""
        rows, cols = elevation.shape
        total = rows * cols
        grid = ((total + BLOCK_SIZE - 1) // BLOCK_SIZE,)
        with self._device:
            self._kernel(grid, (BLOCK_SIZE,),
                         (elevation, slope, np.int32(rows), np.int32(cols),
                          np.float32(grid_spacing), RADIANS_TO_DEGREES))
            cp.cuda.Stream.null.synchronize()

    def to_host(self, buffer) -> np.ndarray:
        with self._device:
            return cp.asnumpy(buffer)

    def release(self) -> None:
        """Return every unreferenced device block to the driver."""
        with self._device:
            cp.get_default_memory_pool().free_all_blocks()
            cp.cuda.Stream.null.synchronize()


class SlopeComputeEngine:
    def __init__(self, mode: ExecutionMode = ExecutionMode.CPU, workers: int = 1,
                 device=None, device_id: int = 0, memory_budget_bytes: Optional[int] = None,
                 bytes_per_gb_allowance: int = DEFAULT_BYTES_PER_GB_ALLOWANCE) -> None:
        """
        Initialize the slope compute engine.

        Args:
            mode (ExecutionMode): CPU (threaded) or ACCELERATOR (CUDA, partitioned).
            workers (int): Worker threads for the CPU path.
            device: Accelerator to use. Defaults to a CudaDevice on ``device_id`` in accelerator mode.
            device_id (int): CUDA device ordinal used when no device is given.
            memory_budget_bytes (int): Device memory budget. If None, the device's total memory is used.
            bytes_per_gb_allowance (int): Bytes of grid allowed per whole GB of device memory.
        """
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.mode = ExecutionMode(mode)
        self.workers = workers
        self.memory_budget_bytes = memory_budget_bytes
        self.bytes_per_gb_allowance = bytes_per_gb_allowance
        self.device = device
        if self.mode is ExecutionMode.ACCELERATOR and self.device is None:
            self.device = CudaDevice(device_id)

    def compute(self, elevation: np.ndarray, stats: GridStats) -> np.ndarray:
        """
        Compute the slope grid in degrees for a full elevation grid.

        Args:
            elevation (np.ndarray): Read-only elevation grid of shape ``stats.shape``
            stats (GridStats): Grid statistics

        Returns:
            np.ndarray: float32 slope grid, borders at 0
        """
        if elevation.shape != stats.shape:
            raise MalformedInputError(f"Elevation grid shape {elevation.shape} does not match {stats.shape}")
        if stats.grid_spacing <= 0:
            raise MalformedInputError(f"Grid spacing must be positive, got {stats.grid_spacing}")
        elevation = np.ascontiguousarray(elevation, dtype=np.float32)
        if self.mode is ExecutionMode.ACCELERATOR:
            return self._compute_accelerator(elevation, stats)
        return self._compute_cpu(elevation, stats)

    def _compute_cpu(self, elevation: np.ndarray, stats: GridStats) -> np.ndarray:
        slope = np.zeros(stats.shape, dtype=np.float32)
        bands = split_rows(1, stats.height - 1, self.workers)
        if len(bands) <= 1:
            for band in bands:
                slope_band(elevation, band, stats.grid_spacing, slope)
            return slope

        # Each worker owns one statically assigned band of output rows
        with ThreadPoolExecutor(max_workers=len(bands)) as executor:
            futures = [executor.submit(slope_band, elevation, band, stats.grid_spacing, slope)
                       for band in bands]
            for future in futures:
                future.result()
        return slope

    def partition_budget(self, width: int) -> int:
        """Rows per device partition for a grid of ``width`` columns."""
        memory = self.memory_budget_bytes
        if memory is None:
            memory = self.device.total_memory
            logger.info("Found device memory", bytes=memory)
        budget = row_budget(memory, width, self.bytes_per_gb_allowance)
        if budget < 1:
            raise AcceleratorAllocationError(
                f"Device memory budget of {memory} bytes cannot hold a single row of width {width}")
        return budget

    def _compute_accelerator(self, elevation: np.ndarray, stats: GridStats) -> np.ndarray:
        budget = self.partition_budget(stats.width)
        if budget >= stats.height:
            logger.info("No portions necessary, enough device memory", row_budget=budget)
        else:
            logger.info("Task split into portions, not enough device memory",
                        portions=len(plan_partitions(stats.height, budget)), row_budget=budget)

        slope = np.zeros(stats.shape, dtype=np.float32)
        # Strictly one partition resident on the device at a time
        for partition in iter_partitions(elevation, budget):
            result = self._process_partition(partition.data, stats.grid_spacing)
            stitch(slope, partition.band, result)
            del partition, result
        return slope

    def _process_partition(self, data: np.ndarray, grid_spacing: float) -> np.ndarray:
        """Allocate, launch, copy back and release the device buffers of one partition."""
        elevation_gpu = slope_gpu = None
        try:
            elevation_gpu = self.device.allocate(data)
            slope_gpu = self.device.zeros(data.shape)
            self.device.launch(elevation_gpu, slope_gpu, grid_spacing)
            result = self.device.to_host(slope_gpu)
        finally:
            # Drop the last references so the pool can hand the blocks back
            elevation_gpu = slope_gpu = None
            self.device.release()
        return result


__all__ = ['SlopeComputeEngine', 'CudaDevice', 'CUDA_AVAILABLE']
