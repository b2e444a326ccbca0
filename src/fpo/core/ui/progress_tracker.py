"""Progress tracker for optimization jobs using tqdm."""

from types import TracebackType
from typing import Optional, Type

from tqdm import tqdm


class ProgressTracker:
    """Track job progress over iterations with tqdm."""

    def __init__(self, num_iterations: int, start_iteration: int = 1, enabled: bool = True):
        self.num_iterations = num_iterations
        self.start_iteration = start_iteration
        self.enabled = enabled
        self.best_weight = 0.0
        self._pbar: Optional[tqdm] = None

    def start(self) -> None:
        """Start the progress bar."""
        self._pbar = tqdm(
            total=self.num_iterations,
            desc="FPO",
            unit="iter",
            bar_format="{l_bar}{bar}| {n_fmt}/{total_fmt} [{elapsed}<{remaining}]",
            dynamic_ncols=True,
            disable=not self.enabled,
        )

    def close(self) -> None:
        """Close the progress bar."""
        if self._pbar:
            self._pbar.close()
            self._pbar = None

    def __enter__(self) -> "ProgressTracker":
        self.start()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def update_iteration(self, iteration: int, champion_id: str, champion_weight: float) -> None:
        """Show the champion after a committed iteration and advance the bar."""
        self.best_weight = max(self.best_weight, champion_weight)
        if self._pbar:
            self._pbar.set_postfix({
                "iter": iteration,
                "champion": champion_id,
                "weight": f"{champion_weight:.4f}",
            })
            self._pbar.update(1)
