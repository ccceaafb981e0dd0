# This module handles context engineering for one chat request

# +---------------------+      +----------------------+
# |   Session Store     |      |   Knowledge Index    |
# |---------------------|      |----------------------|
# | Ordered turns       |      | Reference snippets   |
# | Tool call / results |      | (best effort, ranked)|
# +---------------------+      +----------------------+
#            \                      /
#             \                    /
#              v                  v
# +------------------------------------+
# |          Assembled request         |
# |------------------------------------|
# | Persona instruction                |
# | <reference> snippets </reference>  |
# | Newest history that fits budget    |
# | New user turn (text + images)      |
# +------------------------------------+
#                  |
#                  v
#       [LLM / tool dispatch loop]
