#
# 2D simplex noise, vectorized over numpy arrays.
#
# Based on example code by Stefan Gustavson (stegu@itn.liu.se).
# Optimisations by Peter Eastman (peastman@drizzle.stanford.edu).
#
# The original code was placed in the public domain by its author,
# Stefan Gustavson. You may use it as you see fit, but
# attribution is appreciated.
#
#
import numpy


grad3 = numpy.array([(1,1,0),(-1,1,0),(1,-1,0),(-1,-1,0),
                     (1,0,1),(-1,0,1),(1,0,-1),(-1,0,-1),
                     (0,1,1),(0,-1,1),(0,1,-1),(0,-1,-1)], dtype=numpy.float64)

p = numpy.array( [151,160,137,91,90,15,
    131,13,201,95,96,53,194,233,7,225,140,36,103,30,69,142,8,99,37,240,21,10,23,
    190, 6,148,247,120,234,75,0,26,197,62,94,252,219,203,117,35,11,32,57,177,33,
    88,237,149,56,87,174,20,125,136,171,168, 68,175,74,165,71,134,139,48,27,166,
    77,146,158,231,83,111,229,122,60,211,133,230,220,105,92,41,55,46,245,40,244,
    102,143,54, 65,25,63,161, 1,216,80,73,209,76,132,187,208, 89,18,169,200,196,
    135,130,116,188,159,86,164,100,109,198,173,186, 3,64,52,217,226,250,124,123,
    5,202,38,147,118,126,255,82,85,212,207,206,59,227,47,16,58,17,182,189,28,42,
    223,183,170,213,119,248,152, 2,44,154,163, 70,221,153,101,155,167, 43,172,9,
    129,22,39,253, 19,98,108,110,79,113,224,232,178,185, 112,104,218,246,97,228,
    251,34,242,193,238,210,144,12,191,179,162,241, 81,51,145,235,249,14,239,107,
    49,192,214, 31,181,199,106,157,184, 84,204,176,115,121,50,45,127, 4,150,254,
    138,236,205,93,222,114,67,29,24,72,243,141,128,195,78,66,215,61,156,180] )
# To remove the need for index wrapping, double the permutation table length
perm = p[numpy.arange(512) & 255]

permMod12 = perm % 12

#Skewing and unskewing factors for 2 dimensions
F2 = 0.5*(3.0**0.5-1.0)
G2 = (3.0-3.0**0.5)/6.0

# Scales the corner sum to the interval [-1,1].
NOISE2_SCALE = 70.0


# returns floor of floating point array by coercing to integer
def fastfloor(x):
    return numpy.floor(x).astype(numpy.int64)


def _corner(gi, x, y):
    t = 0.5 - x*x - y*y
    t = numpy.where(t < 0, 0.0, t)
    t *= t
    return t * t * (grad3[gi, 0]*x + grad3[gi, 1]*y)


def noise2(xin, yin):
    """ 2D simplex noise for arrays of sample coordinates.

    `xin` and `yin` must broadcast to the same shape; the result has that
    shape and lies in [-1, 1]. The falloff kernel (0.5 - r^2)^4 keeps the
    field and its gradient continuous.
    """
    xin = numpy.asarray(xin, dtype=numpy.float64)
    yin = numpy.asarray(yin, dtype=numpy.float64)
    xin, yin = numpy.broadcast_arrays(xin, yin)
    # Skew the input space to determine which simplex cell we're in
    s = (xin+yin)*F2 # Hairy factor for 2D
    i = fastfloor(xin+s)
    j = fastfloor(yin+s)
    t = (i+j)*G2
    X0 = i-t # Unskew the cell origin back to (x,y) space
    Y0 = j-t
    x0 = xin-X0 # The x,y distances from the cell origin
    y0 = yin-Y0
    # For the 2D case, the simplex shape is an equilateral triangle.
    # Determine which simplex we are in.
    i1 = (x0>y0).astype(numpy.int64)  # lower triangle, XY order: (0,0)->(1,0)->(1,1)
    j1 = 1 - i1 # upper triangle, YX order: (0,0)->(0,1)->(1,1)
    # A step of (1,0) in (i,j) means a step of (1-c,-c) in (x,y), and
    # a step of (0,1) in (i,j) means a step of (-c,1-c) in (x,y), where
    # c = (3-sqrt(3))/6
    x1 = x0 - i1 + G2 # Offsets for middle corner in (x,y) unskewed coords
    y1 = y0 - j1 + G2
    x2 = x0 - 1.0 + 2.0 * G2 # Offsets for last corner in (x,y) unskewed coords
    y2 = y0 - 1.0 + 2.0 * G2

    # Work out the hashed gradient indices of the three simplex corners
    ii = i & 255
    jj = j & 255
    gi0 = permMod12[ii+perm[jj]]
    gi1 = permMod12[ii+i1+perm[jj+j1]]
    gi2 = permMod12[ii+1+perm[jj+1]]

    # Add contributions from each corner to get the final noise value.
    n = _corner(gi0, x0, y0) + _corner(gi1, x1, y1) + _corner(gi2, x2, y2)
    return NOISE2_SCALE * n


if __name__ == '__main__':
    import time
    from PIL import Image

    t = time.time()
    ys, xs = numpy.mgrid[0:8:0.02, 0:8:0.02]
    n = noise2(xs, ys)
    print('noise2', n.shape, time.time()-t)
    print(n.min(), n.max(), numpy.average(n))
    n = numpy.array((n - n.min()) / (n.max()-n.min())*255, dtype='u1')
    Image.fromarray(n).save('noise2.png')
