exports.partial = "set before failure"
raise ValueError("module init failed")
