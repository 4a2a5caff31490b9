"""
Names of the step variables the engine protocol relies on.

Kept free of other opaquesync imports so both the engine and session layers
can use them.
"""

# Behaviour variables the first step must carry
RANDOM_SEED_VAR = "_randomseed"
USER_ID_VAR = "_userid"
LANGUAGE_VAR = "_language"
BEHAVIOUR_VAR = "_preferredbehaviour"

IDENTITY_VARS = (RANDOM_SEED_VAR, USER_ID_VAR, LANGUAGE_VAR, BEHAVIOUR_VAR)

# Question variant, passed to the engine as the attempt number
ATTEMPT_VAR = "_attempt"

# The seed is fixed by convention; the variant selects the question version
DEFAULT_RANDOM_SEED = 123456789

# Radio groups are named "_rg" by the engine, so they look internal
RADIO_GROUP_VAR = "_rg"

# Submitted fields named like this are engine buttons
OM_ACTION_PREFIX = "omact_"
