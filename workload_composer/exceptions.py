"""Exception hierarchy for workload-composer."""


class CompositionError(Exception):
    """Base exception for all composition errors."""


class MalformedOverrideError(CompositionError):
    """A user-supplied fragment or vars block could not be interpreted."""


class UnknownPresetKeyError(CompositionError):
    """A preset key has no definition in the catalog."""


class ConflictingIdentityError(CompositionError):
    """Two fragments claim the same keyed entry with irreconcilable fields."""


class PresetDependencyError(CompositionError):
    """Preset dependencies could not be resolved (circular requirement)."""


class UnknownAddonError(CompositionError):
    """An add-on was selected that no provider implements."""


class UnknownKindError(CompositionError):
    """No default profile exists for the requested resource kind."""
