exports.upper = lambda text: text.upper()
