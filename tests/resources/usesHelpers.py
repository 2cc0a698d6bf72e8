helpers = require("./lib/helpers")


def shout(text):
    return helpers.upper(text) + "!"


exports.shout = shout
