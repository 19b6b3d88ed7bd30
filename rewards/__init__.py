"""
Companion reward engine

Turns daily health observations into durable reward state:
- Achievements with cosmetic rewards
- Daily streaks with a milestone ladder
- Rotating weekly challenges
- Cosmetic inventory for the companion
- Ordered reward notifications
"""
