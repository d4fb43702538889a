# vml_localizer/localization/particle_filter/abstract_corrector.py

import logging
from collections import deque

from vml_localizer.utils.errors import UnsynchronizedStateError

logger = logging.getLogger(__name__)

class AbstractCorrector:
    """
    Boundary to the particle-filter owner shared by all correctors.

    Buffers the particle arrays published by the filter, hands out the one
    closest in time to a measurement, and forwards re-weighted arrays back
    through a commit callback. Resampling stays with the filter owner.
    """
    def __init__(self, config=None, commit_callback=None):
        """
        Initializes the AbstractCorrector.

        Args:
            config (dict, optional): 'particle_filter' section. Keys: 'acceptable_max_delay'
                                     (seconds), 'buffer_size' (snapshots).
            commit_callback (callable, optional): Called with each committed ParticleArray.
        """
        config = config or {}
        self.acceptable_max_delay = float(config.get('acceptable_max_delay', 1.0))
        self._particle_array_buffer = deque(maxlen=int(config.get('buffer_size', 100)))
        self.commit_callback = commit_callback
        self.last_committed = None
        logger.info(f"{type(self).__name__} initialized with acceptable delay: {self.acceptable_max_delay} sec")

    def add_particle_array(self, particle_array):
        """Buffers a particle array published by the filter owner."""
        self._particle_array_buffer.append(particle_array)
        logger.debug(f"Buffered particles at {particle_array.stamp:.3f}. Buffer size: {len(self._particle_array_buffer)}")

    def get_synchronized_particle_array(self, stamp):
        """
        Returns a copy of the buffered particle array closest in time to `stamp`.
        Arrays older than `stamp - acceptable_max_delay` are discarded first.

        Args:
            stamp (float): Measurement timestamp in seconds.

        Returns:
            ParticleArray: Deep copy of the best matching snapshot.

        Raises:
            UnsynchronizedStateError: If no snapshot remains in the buffer.
        """
        while self._particle_array_buffer and self._particle_array_buffer[0].stamp - stamp < -self.acceptable_max_delay:
            self._particle_array_buffer.popleft()

        if not self._particle_array_buffer:
            raise UnsynchronizedStateError(f"no particle array available for stamp {stamp:.3f}")

        best = min(self._particle_array_buffer, key=lambda array: abs(array.stamp - stamp))
        return best.copy()

    def set_weighted_particle_array(self, particle_array):
        """Commits a re-weighted particle array to the filter owner."""
        self.last_committed = particle_array
        if self.commit_callback is not None:
            self.commit_callback(particle_array)
        logger.debug(f"Committed weighted particles at {particle_array.stamp:.3f}.")

    def clear_buffer(self):
        self._particle_array_buffer.clear()
        logger.debug("Particle array buffer cleared.")
