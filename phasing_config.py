"""Run configuration for polyhap."""

from dataclasses import dataclass
from typing import Optional, Tuple


@dataclass
class PhasingConfig:
    """Settings for one phasing run.

    Attributes:
        ploidy: Number of haplotypes to reconstruct (>= 2)
        threads: Worker processes for local clustering (default: 10)
        epsilon: Fragment error rate; estimated from the data when None
        initial_epsilon: Starting guess for the estimate (default: 0.03)
        iqr_factor: Outlier factor for block filling (default: 3.0)
        num_iters_optimizing: Reassignment rounds per window (default: 10)
        num_epsilon_attempts: Windows sampled to estimate epsilon (default: 20)
        block_length: Window length in sites; derived from fragment lengths when None
        overlap: Extra sites each window reaches into the next (default: 0)
        site_range: Inclusive (first, last) site range to phase; everything when None
        fill: Whether to repair outlier windows (default: True)
        sample: VCF sample used for polishing; the first sample when None
        contig: Contig to phase; the first contig of the VCF when None
    """
    ploidy: int
    threads: int = 10
    epsilon: Optional[float] = None
    initial_epsilon: float = 0.03
    iqr_factor: float = 3.0
    num_iters_optimizing: int = 10
    num_epsilon_attempts: int = 20
    block_length: Optional[int] = None
    overlap: int = 0
    site_range: Optional[Tuple[int, int]] = None
    fill: bool = True
    sample: Optional[str] = None
    contig: Optional[str] = None

    def validate(self) -> None:
        """Raise ValueError describing the first invalid setting."""
        if not isinstance(self.ploidy, int) or self.ploidy < 2:
            raise ValueError(f"Ploidy must be an integer >= 2, got {self.ploidy}")
        if not isinstance(self.threads, int) or self.threads < 1:
            raise ValueError(f"Number of threads must be positive integer, got {self.threads}")
        if self.epsilon is not None and not (0.0 < self.epsilon < 1.0):
            raise ValueError(f"Error rate must be in (0, 1), got {self.epsilon}")
        if not (0.0 < self.initial_epsilon < 1.0):
            raise ValueError(f"Initial error rate must be in (0, 1), got {self.initial_epsilon}")
        if self.iqr_factor < 0:
            raise ValueError(f"Outlier factor must be non-negative, got {self.iqr_factor}")
        if self.num_iters_optimizing < 0:
            raise ValueError(f"Number of iterations must be non-negative, got {self.num_iters_optimizing}")
        if self.num_epsilon_attempts < 1:
            raise ValueError(f"Number of epsilon attempts must be positive, got {self.num_epsilon_attempts}")
        if self.block_length is not None and self.block_length < 1:
            raise ValueError(f"Window length must be positive, got {self.block_length}")
        if self.overlap < 0:
            raise ValueError(f"Window overlap must be non-negative, got {self.overlap}")
        if self.site_range is not None:
            (first, last) = self.site_range
            if first < 1 or last < first:
                raise ValueError(f"Invalid site range {first}-{last}")

    @staticmethod
    def parse_range(range_string: str) -> Tuple[int, int]:
        """Parse an inclusive 'START-END' site range."""
        parts = range_string.split("-")
        if len(parts) != 2:
            raise ValueError(f"Range must look like START-END, got {range_string!r}")
        try:
            return (int(parts[0]), int(parts[1]))
        except ValueError:
            raise ValueError(f"Range must look like START-END, got {range_string!r}")

    @classmethod
    def from_args(cls, args) -> 'PhasingConfig':
        """Create and validate a config from parsed command-line arguments."""
        range_string = getattr(args, 'range', None)
        config = cls(
            ploidy=args.ploidy,
            threads=getattr(args, 'threads', 10),
            epsilon=getattr(args, 'epsilon', None),
            iqr_factor=getattr(args, 'outlier_factor', 3.0),
            num_iters_optimizing=getattr(args, 'num_iters', 10),
            num_epsilon_attempts=getattr(args, 'epsilon_attempts', 20),
            block_length=getattr(args, 'window_length', None),
            overlap=getattr(args, 'overlap', 0),
            site_range=cls.parse_range(range_string) if range_string else None,
            fill=not getattr(args, 'no_fill', False),
            sample=getattr(args, 'sample', None),
            contig=getattr(args, 'contig', None),
        )
        config.validate()
        return config
